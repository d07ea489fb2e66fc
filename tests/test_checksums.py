from buildverify.verification.checksums import parse_sha256sums

A = "a" * 64
B = "B" * 64

SUMS = f"""\
-----BEGIN PGP SIGNED MESSAGE-----
Hash: SHA256

{A}  bitcoin-29.1-x86_64-linux-gnu.tar.gz
{B} *bitcoin-29.1-win64-setup.exe
{A}  guix-build-29.1/output/x86_64-apple-darwin/bitcoin-29.1-x86_64-apple-darwin.tar.gz
not a checksum line
-----BEGIN PGP SIGNATURE-----
"""


def test_parses_text_and_binary_forms():
    sums = parse_sha256sums(SUMS)
    assert sums["bitcoin-29.1-x86_64-linux-gnu.tar.gz"] == A
    assert sums["bitcoin-29.1-win64-setup.exe"] == B.lower()


def test_subdirectory_entries_keyed_by_basename():
    sums = parse_sha256sums(SUMS)
    assert sums["bitcoin-29.1-x86_64-apple-darwin.tar.gz"] == A
    assert "guix-build-29.1/output/x86_64-apple-darwin/bitcoin-29.1-x86_64-apple-darwin.tar.gz" in sums


def test_ignores_noise():
    assert parse_sha256sums("Hash: SHA256\n\n") == {}
