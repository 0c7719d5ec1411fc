"""Command line interface for archive-backup-ng."""

from .dispatcher import main

__all__ = ["main"]
