# pyright: standard

"""archive-backup-ng: archive_backup_ng/__logger__.py
A common logger for displaying through rich.
"""

import logging
import logging.handlers
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

# Initialize basic console and handler
cons = Console()
rich_handler = RichHandler(console=cons, show_path=False)
# Create a logger directly
logger = logging.Logger("archive-backup-ng", logging.INFO)

FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def create_logger(
    level: str | int = "INFO",
    log_file: str | Path | None = None,
    width: int | None = None,
) -> None:
    """Helper function to setup logging for console and optional log file."""
    # pylint: disable=global-statement
    global cons, rich_handler, logger

    cons = Console(width=width) if width else Console()
    rich_handler = RichHandler(console=cons, show_path=False)

    handlers: list[logging.Handler] = [rich_handler]
    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.WatchedFileHandler(path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        handlers.append(file_handler)

    logger.handlers.clear()
    logger.propagate = False
    logger.setLevel(level)
    for handler in handlers:
        logger.addHandler(handler)

    logging.basicConfig(
        format="%(message)s",
        datefmt="%H:%M:%S",
        level=level,
        handlers=handlers,
        force=True,
    )
