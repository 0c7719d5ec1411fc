"""Pin and unpin commands: Manage .pinned markers next to archives."""

import argparse
import logging
from pathlib import Path

from .. import __util__
from ..__logger__ import create_logger
from .common import get_log_level

logger = logging.getLogger(__name__)


def marker_path(path: Path) -> Path:
    """Return the pin marker belonging to an archive file."""
    if path.name.endswith(__util__.PIN_SUFFIX):
        return path
    return path.with_name(path.name + __util__.PIN_SUFFIX)


def execute_pin(args: argparse.Namespace) -> int:
    """Execute the pin or unpin command.

    A pinned archive instance is never selected for deletion by retention
    and does not count towards the keep limit.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code
    """
    create_logger(get_log_level(args))

    path = Path(args.path).expanduser()
    marker = marker_path(path)

    if args.command == "pin":
        if marker != path and not path.exists():
            print(f"Error: archive not found: {path}")
            return 1
        try:
            marker.touch(exist_ok=True)
        except OSError as e:
            print(f"Error creating pin marker: {e}")
            return 1
        print(f"Pinned: {path.name}")
        return 0

    if not marker.exists():
        print(f"Not pinned: {path.name}")
        return 0
    try:
        marker.unlink()
    except OSError as e:
        print(f"Error removing pin marker: {e}")
        return 1
    print(f"Unpinned: {path.name}")
    return 0
