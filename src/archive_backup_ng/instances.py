"""Group archive files into logical backup instances.

One backup instance is every file sharing an archive base name and date
stamp token, e.g. for base name ``Docs`` and format ``%Y%m%d-%H%M%S``::

    Docs_20260101-120000.tar.gz.001     volume part
    Docs_20260101-120000.tar.gz.002     volume part
    Docs_20260101-120000.tar.gz.sha256  checksum sidecar
    Docs_20260101-120000.tar.gz.pinned  pin marker (not a member)

Files that do not match the naming pattern are ignored, so unrelated files
sharing the prefix never end up in a delete plan.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from . import __util__
from .config.schema import CHECKSUM_ALGORITHMS

logger = logging.getLogger(__name__)

# strftime directive -> regex fragment for the date stamp token
_DIRECTIVES = {
    "Y": r"\d{4}",
    "y": r"\d{2}",
    "m": r"\d{2}",
    "d": r"\d{2}",
    "H": r"\d{2}",
    "I": r"\d{2}",
    "M": r"\d{2}",
    "S": r"\d{2}",
    "f": r"\d{6}",
    "j": r"\d{3}",
    "p": r"(?:AM|PM|am|pm)",
    "b": r"[A-Za-z]{3}",
    "a": r"[A-Za-z]{3}",
    "B": r"[A-Za-z]+",
    "A": r"[A-Za-z]+",
    "%": "%",
}

_PART_RE = re.compile(r"\.\d{3,}$")


class FileKind:
    ARCHIVE = "archive"
    PART = "part"
    CHECKSUM = "checksum"
    PIN = "pin"


@dataclass
class RemoteFile:
    """A directory listing entry: file name plus creation time."""

    name: str
    created: datetime
    size: Optional[int] = None


@dataclass
class BackupInstance:
    """One logical backup version, possibly spanning several files."""

    key: str
    stamp: str
    timestamp: datetime
    files: list[RemoteFile] = field(default_factory=list)
    is_pinned: bool = False

    @property
    def sort_time(self) -> datetime:
        """Earliest creation time of the member files."""
        if not self.files:
            return self.timestamp
        return min(f.created for f in self.files)

    @property
    def file_names(self) -> list[str]:
        return [f.name for f in self.files]

    @property
    def size(self) -> int:
        return sum(f.size or 0 for f in self.files)


def date_format_to_regex(date_format: str) -> str:
    """Translate a strftime format into a regex matching its output."""
    pattern = []
    i = 0
    while i < len(date_format):
        char = date_format[i]
        if char == "%" and i + 1 < len(date_format):
            directive = date_format[i + 1]
            if directive not in _DIRECTIVES:
                raise ValueError(f"Unsupported date format directive: %{directive}")
            pattern.append(_DIRECTIVES[directive])
            i += 2
            continue
        pattern.append(re.escape(char))
        i += 1
    return "".join(pattern)


def build_name_pattern(base_name: str, date_format: str) -> re.Pattern:
    """Regex matching ``<base><sep><stamp><rest>`` file names."""
    return re.compile(
        "^"
        + re.escape(base_name)
        + re.escape(__util__.NAME_SEPARATOR)
        + "(?P<stamp>"
        + date_format_to_regex(date_format)
        + ")"
        + r"(?P<rest>\..*)?$"
    )


def classify(rest: str) -> str:
    """Classify a file by the part of its name after the date stamp."""
    if rest.endswith(__util__.PIN_SUFFIX):
        return FileKind.PIN
    suffix = rest.rsplit(".", 1)[-1].lower() if "." in rest else ""
    if suffix in CHECKSUM_ALGORITHMS:
        return FileKind.CHECKSUM
    if _PART_RE.search(rest):
        return FileKind.PART
    return FileKind.ARCHIVE


def group_instances(
    files: Iterable[RemoteFile],
    base_name: str,
    date_format: str,
) -> dict[str, BackupInstance]:
    """Group a flat file listing into backup instances keyed by instance key.

    Args:
        files: Listing entries (local staging directory or a target listing)
        base_name: Archive base name of the job
        date_format: strftime format of the date stamp token

    Returns:
        Mapping of instance key -> BackupInstance, ordered by key
    """
    pattern = build_name_pattern(base_name, date_format)
    instances: dict[str, BackupInstance] = {}
    pinned_keys = set()

    for entry in sorted(files, key=lambda f: f.name):
        match = pattern.match(entry.name)
        if not match:
            logger.debug("Ignoring %s: does not match %s", entry.name, pattern.pattern)
            continue
        stamp = match.group("stamp")
        try:
            timestamp = __util__.str_to_date(stamp, date_format)
        except ValueError as e:
            logger.debug("Ignoring %s: bad date stamp %r (%s)", entry.name, stamp, e)
            continue

        key = __util__.instance_key(base_name, stamp)
        kind = classify(match.group("rest") or "")
        if kind == FileKind.PIN:
            pinned_keys.add(key)
            continue

        instance = instances.get(key)
        if instance is None:
            instance = instances[key] = BackupInstance(
                key=key, stamp=stamp, timestamp=timestamp
            )
        instance.files.append(entry)

    for key in pinned_keys:
        if key in instances:
            instances[key].is_pinned = True
        else:
            logger.debug("Pin marker without archive files: %s", key)

    return dict(sorted(instances.items()))


def list_directory(directory: Path) -> list[RemoteFile]:
    """List regular files of a local directory as RemoteFile entries."""
    directory = Path(directory)
    if not directory.is_dir():
        return []
    entries = []
    for item in directory.iterdir():
        if not item.is_file():
            continue
        stat = item.stat()
        created = getattr(stat, "st_birthtime", None) or stat.st_mtime
        entries.append(
            RemoteFile(
                name=item.name,
                created=datetime.fromtimestamp(created),
                size=stat.st_size,
            )
        )
    return entries
