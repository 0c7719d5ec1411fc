"""archive-backup-ng: archive_backup_ng/__init__.py."""

from pathlib import Path


__version__ = "0.3.0"


def encode_path_for_name(path: Path) -> str:
    """Replace '/' with '_' and remove leading slash"""
    return str(path).lstrip("/").replace("/", "_")
