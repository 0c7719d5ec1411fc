# pyright: standard

"""archive-backup-ng: archive_backup_ng/providers/local.py
Transfer archives to a local (or mounted) directory.
"""

import errno
import shutil
import time
from pathlib import Path

from .. import __util__
from ..__logger__ import logger
from ..config.schema import TargetConfig
from ..core.models import ArchiveArtifact, TransferResult
from ..errors import PermanentTransferError, TransientTransferError
from ..instances import RemoteFile, list_directory
from .common import DeleteOutcome, TargetProvider

# errno values that indicate a configuration problem rather than a hiccup
PERMANENT_ERRNOS = {errno.EACCES, errno.EPERM, errno.EROFS, errno.ENOTDIR, errno.EISDIR}


class LocalDirectoryProvider(TargetProvider):
    """Copy archive files into a directory (mounted share, USB disk, NAS)."""

    kind = "local"

    def _root(self, settings: TargetConfig) -> Path:
        return Path(settings.path).expanduser()

    def _prepare(self, settings: TargetConfig) -> None:
        """Create the target directory if needed and allowed."""
        root = self._root(settings)
        if root.is_dir():
            return
        if root.exists():
            logger.error("Target %s: %s is not a directory", settings.name, root)
            raise __util__.AbortError(f"{root} is not a directory")
        if not settings.settings.get("create", True):
            raise PermanentTransferError(f"Target directory does not exist: {root}")
        logger.info("Creating directory: %s", root)
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise _classify(e, f"Error creating target directory {root}") from e

    def transfer(
        self, local_path: Path, metadata: ArchiveArtifact, settings: TargetConfig
    ) -> TransferResult:
        self.prepare(settings)
        root = self._root(settings)
        result = TransferResult(target_name=settings.name)
        start = time.monotonic()

        files = [Path(local_path)] if not metadata.parts else list(metadata.parts)
        if metadata.checksum_file is not None:
            files.append(metadata.checksum_file)

        for source in files:
            destination = root / source.name
            partial = destination.with_name(destination.name + ".partial")
            logger.debug("Copying %s -> %s", source, destination)
            try:
                shutil.copy2(source, partial)
                copied = partial.stat().st_size
                expected = source.stat().st_size
                if settings.settings.get("verify_size", True) and copied != expected:
                    raise TransientTransferError(
                        f"Size mismatch for {destination}: {copied} != {expected}"
                    )
                partial.replace(destination)
            except TransientTransferError:
                partial.unlink(missing_ok=True)
                raise
            except FileNotFoundError as e:
                partial.unlink(missing_ok=True)
                if not Path(source).exists():
                    raise PermanentTransferError(f"Local file vanished: {source}") from e
                raise TransientTransferError(f"Copy to {destination} failed: {e}") from e
            except OSError as e:
                partial.unlink(missing_ok=True)
                raise _classify(e, f"Copy to {destination} failed") from e

            result.remote_locations.append(str(destination))
            result.bytes_transferred += copied

        result.success = True
        result.duration_seconds = time.monotonic() - start
        return result

    def list_remote(self, settings: TargetConfig) -> list[RemoteFile]:
        root = self._root(settings)
        try:
            return list_directory(root)
        except OSError as e:
            raise _classify(e, f"Cannot list {root}") from e

    def delete_remote(self, settings: TargetConfig, names: list[str]) -> DeleteOutcome:
        root = self._root(settings)
        outcome = DeleteOutcome()
        for name in names:
            path = root / name
            if path.parent != root:
                outcome.errors.append(f"Refusing to delete outside target: {name}")
                continue
            try:
                path.unlink()
                outcome.deleted.append(name)
                logger.debug("Deleted remote file: %s", path)
            except FileNotFoundError:
                outcome.deleted.append(name)
            except OSError as e:
                outcome.errors.append(f"{name}: {e}")
        outcome.success = not outcome.errors
        return outcome


def _classify(error: OSError, message: str) -> Exception:
    """Map an OSError to a transient or permanent transfer error."""
    if isinstance(error, PermissionError) or error.errno in PERMANENT_ERRNOS:
        return PermanentTransferError(f"{message}: {error}")
    return TransientTransferError(f"{message}: {error}")
