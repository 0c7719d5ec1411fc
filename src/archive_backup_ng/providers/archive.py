# pyright: standard

"""archive-backup-ng: archive_backup_ng/providers/archive.py
Tar based archive creation with optional volume splitting.
"""

import os
import tarfile
from pathlib import Path

from .. import encode_path_for_name
from ..__logger__ import logger
from ..errors import StageError
from .common import ArchiveOptions, ArchiveOutcome, ArchiveProvider

TAR_MODES = {
    "gz": "w:gz",
    "bz2": "w:bz2",
    "xz": "w:xz",
    "none": "w",
}

COPY_BUFSIZE = 1024 * 1024


class TarArchiveProvider(ArchiveProvider):
    """Create tar archives, skipping unreadable files with a warning.

    Files that cannot be read are reported as a warning instead of failing
    the archive, mirroring how archivers report "some files skipped".
    """

    def create_archive(
        self, sources: list[Path], destination: Path, options: ArchiveOptions
    ) -> ArchiveOutcome:
        destination = Path(destination)
        partial = destination.with_name(destination.name + ".partial")
        mode = TAR_MODES.get(options.archive_format)
        if mode is None:
            return ArchiveOutcome(
                success=False, error=f"Unknown archive format: {options.archive_format}"
            )

        existing = [Path(s) for s in sources if Path(s).exists()]
        missing = [str(s) for s in sources if not Path(s).exists()]
        if not existing:
            return ArchiveOutcome(
                success=False,
                error=f"No source paths exist: {', '.join(missing) or '(none)'}",
            )

        skipped: list[str] = []
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            with tarfile.open(partial, mode) as tar:
                for source in existing:
                    self._add_tree(tar, source, skipped, options)
            partial.replace(destination)
        except StageError as e:
            partial.unlink(missing_ok=True)
            return ArchiveOutcome(success=False, error=str(e))
        except (OSError, tarfile.TarError) as e:
            partial.unlink(missing_ok=True)
            logger.error("Archive creation failed for %s: %s", destination, e)
            return ArchiveOutcome(success=False, error=f"Archive creation failed: {e}")

        parts: list[Path] = []
        if options.split_size and destination.stat().st_size > options.split_size:
            try:
                parts = split_file(destination, options.split_size)
            except OSError as e:
                for part in destination.parent.glob(destination.name + ".[0-9][0-9][0-9]"):
                    part.unlink(missing_ok=True)
                return ArchiveOutcome(success=False, error=f"Splitting archive failed: {e}")

        warnings = []
        if missing:
            warnings.append(f"missing source(s): {', '.join(missing)}")
        if skipped:
            warnings.append(f"{len(skipped)} unreadable file(s) skipped")
            for path in skipped:
                logger.warning("Skipped unreadable file: %s", path)

        return ArchiveOutcome(
            success=True,
            output_path=destination,
            volume_parts=parts,
            warning="; ".join(warnings) or None,
        )

    def _add_tree(
        self, tar: tarfile.TarFile, source: Path, skipped: list[str], options: ArchiveOptions
    ) -> None:
        arc_root = encode_path_for_name(source.resolve()) or "root"
        if source.is_file():
            self._add_file(tar, source, arc_root, skipped)
            return

        def on_error(error: OSError) -> None:
            skipped.append(str(error.filename))

        for dirpath, dirnames, filenames in os.walk(source, onerror=on_error):
            if options.cancel_event is not None and options.cancel_event.is_set():
                raise StageError("cancelled while archiving")
            dirnames.sort()
            rel_dir = Path(dirpath).relative_to(source)
            tar.add(dirpath, arcname=str(Path(arc_root) / rel_dir), recursive=False)
            for name in sorted(filenames):
                path = Path(dirpath) / name
                self._add_file(tar, path, str(Path(arc_root) / rel_dir / name), skipped)

    @staticmethod
    def _add_file(tar: tarfile.TarFile, path: Path, arcname: str, skipped: list[str]) -> None:
        try:
            tar.add(path, arcname=arcname, recursive=False)
        except (PermissionError, FileNotFoundError):
            skipped.append(str(path))


def split_file(path: Path, part_size: int) -> list[Path]:
    """Split ``path`` into numbered parts (``name.001``, ...) and remove it."""
    parts = []
    with open(path, "rb") as src:
        index = 1
        while True:
            part = path.with_name(f"{path.name}.{index:03d}")
            written = 0
            with open(part, "wb") as dst:
                while written < part_size:
                    chunk = src.read(min(COPY_BUFSIZE, part_size - written))
                    if not chunk:
                        break
                    dst.write(chunk)
                    written += len(chunk)
            if written == 0:
                part.unlink()
                break
            parts.append(part)
            index += 1
    path.unlink()
    logger.debug("Split %s into %d part(s)", path, len(parts))
    return parts
