# pyright: standard

"""archive-backup-ng: archive_backup_ng/providers/common.py
Collaborator boundaries used by the job pipeline.

Each boundary is a small base class; concrete providers override the
methods. Target providers report retryable failures by raising
TransientTransferError and final ones by raising PermanentTransferError.
"""

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..__logger__ import logger
from ..config.schema import TargetConfig
from ..core.models import ArchiveArtifact, TransferResult
from ..instances import RemoteFile


@dataclass
class ArchiveOptions:
    """Options passed to an archive provider."""

    archive_format: str = "gz"
    split_size: Optional[int] = None
    cancel_event: Optional[threading.Event] = None


@dataclass
class ArchiveOutcome:
    """Result of an archive creation attempt."""

    success: bool
    output_path: Optional[Path] = None
    volume_parts: list[Path] = field(default_factory=list)
    warning: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SnapshotHandle:
    """Mapping of original source paths to the paths to archive from."""

    mapping: dict[str, str] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def resolve(self, source: str) -> str:
        return self.mapping.get(source, source)


@dataclass
class DeleteOutcome:
    """Result of deleting files on a target."""

    success: bool = True
    deleted: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class ArchiveProvider:
    """Creates archives from source paths."""

    def create_archive(
        self, sources: list[Path], destination: Path, options: ArchiveOptions
    ) -> ArchiveOutcome:
        raise NotImplementedError


class SnapshotProvider:
    """Creates point-in-time views of source paths."""

    def acquire(self, sources: list[str]) -> SnapshotHandle:
        raise NotImplementedError

    def release(self, handle: SnapshotHandle) -> None:
        """Release a snapshot; must tolerate a partially acquired handle."""
        raise NotImplementedError


class ChecksumProvider:
    """Computes and verifies file digests."""

    def compute(self, path: Path, algorithm: str) -> str:
        raise NotImplementedError

    def verify(self, path: Path, expected: str, algorithm: str) -> bool:
        return self.compute(path, algorithm).lower() == expected.strip().lower()


class TargetProvider:
    """Generic structure of a transfer target implementation."""

    kind = "generic"

    def prepare(self, settings: TargetConfig) -> None:
        """Public access to _prepare, called once before the first transfer."""
        logger.debug("Preparing %s target %s ...", self.kind, settings.name)
        return self._prepare(settings)

    def transfer(
        self, local_path: Path, metadata: ArchiveArtifact, settings: TargetConfig
    ) -> TransferResult:
        """Copy an archive instance to the target."""
        raise NotImplementedError

    def list_remote(self, settings: TargetConfig) -> list[RemoteFile]:
        """Return the files currently stored on the target."""
        raise NotImplementedError

    def delete_remote(self, settings: TargetConfig, names: list[str]) -> DeleteOutcome:
        """Delete the named files from the target."""
        raise NotImplementedError

    # The following methods may be implemented by providers unless the
    # default behaviour is wanted.

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind!r})"

    def _prepare(self, settings: TargetConfig) -> None:
        """Called before transfers for additional checks."""
        pass
