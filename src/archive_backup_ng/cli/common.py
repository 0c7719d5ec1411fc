"""Shared CLI utilities and argument parsers."""

import argparse
import logging
from pathlib import Path

from ..__logger__ import create_logger
from ..config import Config, ConfigError, JobConfig, find_config_file, load_config
from ..config.loader import CONFIG_PATHS
from ..transaction import set_transaction_log

logger = logging.getLogger(__name__)


def add_verbosity_args(parser: argparse.ArgumentParser) -> None:
    """Add verbosity-related arguments to a parser."""
    group = parser.add_argument_group("Output options")
    group.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    group.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress non-essential output",
    )
    group.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug output",
    )


def add_selection_args(parser: argparse.ArgumentParser, sets: bool = True) -> None:
    """Add --job (and optionally --set) selection arguments."""
    parser.add_argument(
        "--job",
        metavar="NAME",
        action="append",
        default=[],
        help="Only this job (repeatable; dependencies are added)",
    )
    if sets:
        parser.add_argument(
            "--set",
            metavar="NAME",
            action="append",
            default=[],
            dest="sets",
            help="Run a configured set (repeatable)",
        )


def get_log_level(args: argparse.Namespace) -> str:
    """Determine log level from parsed arguments.

    Args:
        args: Parsed command line arguments

    Returns:
        Log level string (DEBUG, INFO, WARNING, ERROR)
    """
    if getattr(args, "debug", False):
        return "DEBUG"
    elif getattr(args, "quiet", False):
        return "WARNING"
    elif getattr(args, "verbose", False):
        return "DEBUG"
    else:
        return "INFO"


def load_cli_config(args: argparse.Namespace) -> tuple[Config, Path]:
    """Find and load the configuration, then set up logging from it.

    Raises:
        ConfigError: If no configuration exists or it is invalid
    """
    config_path = find_config_file(getattr(args, "config", None))
    if config_path is None:
        searched = ", ".join(str(p) for p in CONFIG_PATHS)
        raise ConfigError(
            f"No configuration file found (searched: {searched}). "
            "Create one with: archive-backup-ng config init"
        )

    config, warnings = load_config(config_path)
    create_logger(get_log_level(args), log_file=config.global_config.log_file)
    logger.debug("Loaded configuration from: %s", config_path)
    for warning in warnings:
        logger.warning("Config: %s", warning)

    if config.global_config.transaction_log:
        set_transaction_log(config.global_config.transaction_log)
    return config, config_path


def select_jobs(config: Config, names: list[str] | None) -> list[JobConfig]:
    """Return the named jobs, or every enabled job when no names are given.

    Raises:
        ConfigError: If a named job does not exist
    """
    if not names:
        return config.get_enabled_jobs()
    jobs = []
    for name in names:
        job = config.get_job(name)
        if job is None:
            raise ConfigError(f"Unknown job: '{name}'")
        jobs.append(job)
    return jobs
