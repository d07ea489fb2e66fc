import hashlib
import os

import pytest

from buildverify.verification.hasher import (
    NOT_AVAILABLE,
    hash_tree,
    sha256_file,
    sha256_or_na,
)


def test_sha256_file_reads_in_chunks(tmp_path):
    f = tmp_path / "a.bin"
    f.write_bytes(b"abc" * 1000)
    assert sha256_file(f, block_size=7) == hashlib.sha256(b"abc" * 1000).hexdigest()
    assert sha256_file(f) == sha256_file(f, block_size=7)


def test_sha256_file_missing_raises(tmp_path):
    with pytest.raises(OSError):
        sha256_file(tmp_path / "missing")


def test_sha256_or_na(tmp_path):
    f = tmp_path / "a"
    f.write_bytes(b"")
    assert sha256_or_na(f) == hashlib.sha256(b"").hexdigest()
    assert sha256_or_na(None) == NOT_AVAILABLE
    assert sha256_or_na(tmp_path / "missing") == NOT_AVAILABLE
    assert sha256_or_na(tmp_path) == NOT_AVAILABLE


def test_hash_tree_relative_posix_keys(tmp_path):
    (tmp_path / "usr" / "bin").mkdir(parents=True)
    (tmp_path / "usr" / "bin" / "app").write_bytes(b"app")
    (tmp_path / "top.txt").write_bytes(b"top")
    tree = hash_tree(tmp_path)
    assert list(tree) == ["top.txt", "usr/bin/app"]
    assert tree["usr/bin/app"] == sha256_file(tmp_path / "usr" / "bin" / "app")


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="needs symlinks")
def test_hash_tree_symlinks_by_target(tmp_path):
    (tmp_path / "lib.so.1").write_bytes(b"lib")
    os.symlink("lib.so.1", tmp_path / "lib.so")
    tree = hash_tree(tmp_path)
    assert tree["lib.so"] == "symlink:lib.so.1"


def test_hash_tree_patterns(tmp_path):
    (tmp_path / "A.class").write_bytes(b"1")
    (tmp_path / "notes.txt").write_bytes(b"2")
    assert list(hash_tree(tmp_path, ("*.class",))) == ["A.class"]
