# pyright: standard

"""archive-backup-ng: archive_backup_ng/__util__.py
Common utility code shared among modules.
"""

import re
import subprocess
import time
from datetime import datetime
from typing import Any

from .__logger__ import logger

DEFAULT_DATE_FORMAT = "%Y%m%d-%H%M%S"
NAME_SEPARATOR = "_"
PIN_SUFFIX = ".pinned"

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([KMGT]?)(i?B)?\s*$", re.IGNORECASE)
_SIZE_POWERS = {"": 0, "K": 1, "M": 2, "G": 3, "T": 4}


class AbortError(Exception):
    """Exception where archive-backup-ng should abort."""


def log_heading(caption: str) -> str:
    """Formatted heading for logging output sections."""
    return f"--[ {caption} ]--"


def date_to_str(timestamp: datetime | None = None, fmt: str | None = None) -> str:
    """Render ``timestamp`` (default: now) as a date stamp token."""
    if timestamp is None:
        timestamp = datetime.now()
    return timestamp.strftime(fmt or DEFAULT_DATE_FORMAT)


def str_to_date(data: str, fmt: str | None = None) -> datetime:
    """Parse a date stamp token back into a datetime."""
    return datetime.strptime(data, fmt or DEFAULT_DATE_FORMAT)


def instance_key(base_name: str, stamp: str) -> str:
    """Return the identifier shared by every file of one backup instance."""
    return f"{base_name}{NAME_SEPARATOR}{stamp}"


def archive_name(base_name: str, stamp: str, extension: str) -> str:
    """Return the file name of the primary archive for an instance."""
    return f"{instance_key(base_name, stamp)}{extension}"


def format_size(size: float | None) -> str:
    """Format a byte count using binary units."""
    if size is None:
        return "unknown"
    if size < 1024:
        return f"{int(size)} B"
    for unit in ("KiB", "MiB", "GiB"):
        size /= 1024
        if size < 1024:
            return f"{size:.2f} {unit}"
    return f"{size / 1024:.2f} TiB"


def parse_size(value: str | int | None) -> int | None:
    """Parse a human size string ('100M', '1.5GiB', '10MB') into bytes.

    Bare suffixes and ``iB`` suffixes are binary, ``B`` suffixes after a
    unit letter are SI. Returns None when the value cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, int):
        return value
    match = _SIZE_RE.match(value)
    if not match:
        return None
    number, unit, suffix = match.groups()
    unit = unit.upper()
    base = 1000 if unit and suffix and suffix.upper() == "B" else 1024
    return int(float(number) * base ** _SIZE_POWERS[unit])


def exec_subprocess(command, method: str = "run", **kwargs) -> Any:
    """Run a subprocess and return its result, logging the command."""
    logger.debug("Executing: %s", command)
    start = time.monotonic()
    try:
        return getattr(subprocess, method)(command, **kwargs)
    finally:
        logger.debug(
            "Command finished after %.2fs: %s", time.monotonic() - start, command
        )
