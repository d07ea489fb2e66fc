from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Optional

from buildverify import config
from buildverify.common.exceptions import SignatureStripError
from buildverify.common.execution import find_tool, open_stream, run_cmd
from buildverify.common.formatting import short_hash
from buildverify.core.container import detect_engine
from buildverify.core.models import ComparisonOutcome, Verdict
from buildverify.verification.hasher import sha256_file
from .base import hash_pair, identical_outcome

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


class AuthenticodeComparator:
    """Compare Windows PE files with their Authenticode signatures removed.

    Official installers are code-signed after the reproducible build, so the
    signature is stripped from both sides with ``osslsigncode`` before
    hashing. When osslsigncode is not installed it runs in a throwaway
    Debian container.
    """

    name = "authenticode"

    def __init__(
        self,
        engine: Optional[str] = None,
        runner: Runner = run_cmd,
        finder: Callable[[str], Optional[Path]] = find_tool,
    ):
        self.engine = engine
        self.runner = runner
        self.finder = finder

    def compare(self, built: Path, official: Path, workdir: Path) -> ComparisonOutcome:
        built_hash, official_hash = hash_pair(built, official)
        if built_hash == official_hash:
            return identical_outcome(built_hash, official_hash)

        stripped = workdir / "stripped"
        stripped.mkdir(parents=True, exist_ok=True)
        notes = []

        official_out = stripped / f"official-{official.name}"
        self.strip(official, official_out)

        built_out = stripped / f"built-{built.name}"
        try:
            self.strip(built, built_out)
        except SignatureStripError:
            # Locally built binaries are normally unsigned
            shutil.copyfile(built, built_out)
            notes.append("Built binary carries no signature; compared as-is")

        b, o = sha256_file(built_out), sha256_file(official_out)
        logger.info("Stripped hashes: built %s, official %s", short_hash(b), short_hash(o))
        if b == o:
            notes.insert(0, "Identical after removing the Authenticode signature")
            return ComparisonOutcome(Verdict.CONTENTS_IDENTICAL, built_hash, official_hash, notes=notes)
        notes.insert(0, f"Differs after signature removal (built {b}, official {o})")
        return ComparisonOutcome(Verdict.DIFFERENT, built_hash, official_hash, notes=notes)

    def strip(self, src: Path, dest: Path) -> Path:
        """Write ``src`` without its signature to ``dest``."""
        tool = self.finder("osslsigncode")
        if tool is not None:
            dest.unlink(missing_ok=True)
            res = self.runner([str(tool), "remove-signature", "-in", str(src), "-out", str(dest)])
            if res.returncode != 0 or not dest.is_file():
                raise SignatureStripError(str(src), (res.stderr or res.stdout or "").strip())
            return dest
        return self._strip_in_container(src, dest)

    def _strip_in_container(self, src: Path, dest: Path) -> Path:
        # Result comes back on stdout so the host file belongs to the caller
        engine = self.engine or detect_engine()
        script = (
            "apt-get update -qq >/dev/null 2>&1 && "
            "apt-get install -y -qq osslsigncode >/dev/null 2>&1 && "
            "osslsigncode remove-signature -in /work/input -out /tmp/out >&2 && cat /tmp/out"
        )
        cmd = [
            engine, "run", "--rm",
            "-v", f"{src.resolve()}:/work/input:ro,Z",
            config.OSSLSIGNCODE_IMAGE,
            "bash", "-c", script,
        ]
        logger.info("osslsigncode not installed, stripping %s in %s", src.name, config.OSSLSIGNCODE_IMAGE)
        with open_stream(cmd) as proc, open(dest, "wb") as fh:
            shutil.copyfileobj(proc.stdout, fh)
        if proc.returncode != 0 or dest.stat().st_size == 0:
            dest.unlink(missing_ok=True)
            raise SignatureStripError(str(src), f"{engine} run exited with {proc.returncode}")
        return dest
