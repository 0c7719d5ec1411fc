# pyright: standard

"""archive-backup-ng: archive_backup_ng/providers/checksum.py
hashlib based checksums and sha256sum-compatible sidecar files.
"""

import hashlib
from pathlib import Path

from ..__logger__ import logger
from .common import ChecksumProvider

READ_SIZE = 1024 * 1024


class HashlibChecksumProvider(ChecksumProvider):
    """Compute digests with hashlib."""

    def compute(self, path: Path, algorithm: str) -> str:
        try:
            digest = hashlib.new(algorithm)
        except ValueError as e:
            raise ValueError(f"Unsupported checksum algorithm: {algorithm}") from e
        with open(path, "rb") as f:
            while chunk := f.read(READ_SIZE):
                digest.update(chunk)
        return digest.hexdigest()


def sidecar_path(primary: Path, algorithm: str) -> Path:
    """Return the checksum sidecar path for an archive."""
    return primary.with_name(f"{primary.name}.{algorithm}")


def write_sidecar(path: Path, digests: dict[str, str]) -> None:
    """Write ``<digest>  <file name>`` lines, one per archive file."""
    lines = [f"{digest}  {name}\n" for name, digest in sorted(digests.items())]
    path.write_text("".join(lines), encoding="utf-8")
    logger.debug("Wrote checksum sidecar %s (%d entries)", path, len(lines))


def read_sidecar(path: Path) -> dict[str, str]:
    """Parse a sidecar file into a mapping of file name -> digest."""
    digests = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line:
            continue
        digest, _, name = line.partition("  ")
        if not name:
            raise ValueError(f"Malformed checksum line in {path}: {line!r}")
        digests[name.lstrip("*")] = digest
    return digests
