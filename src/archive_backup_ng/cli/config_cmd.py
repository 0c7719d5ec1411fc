"""Config command: Configuration management."""

import argparse
import logging

from ..__logger__ import create_logger
from ..config import ConfigError, find_config_file, load_config
from ..config.loader import CONFIG_PATHS, generate_example_config
from ..core.graph import check_staging_conflicts, execution_order
from ..core.models import EXIT_CONFIG_ERROR
from ..providers import get_provider_class
from .common import get_log_level

logger = logging.getLogger(__name__)


def execute_config(args: argparse.Namespace) -> int:
    """Execute the config command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code
    """
    create_logger(get_log_level(args))

    action = getattr(args, "config_action", None)

    if action == "validate":
        return _validate_config(args)
    elif action == "init":
        return _init_config(args)
    else:
        print("Usage: archive-backup-ng config <validate|init>")
        return 1


def _validate_config(args: argparse.Namespace) -> int:
    """Validate configuration file, including the job dependency graph."""
    try:
        config_path = find_config_file(getattr(args, "config", None))
        if config_path is None:
            print("No configuration file found.")
            print("Searched locations:")
            for path in CONFIG_PATHS:
                print(f"  {path}")
            return EXIT_CONFIG_ERROR

        print(f"Validating: {config_path}")
        config, warnings = load_config(config_path)

        for target in config.targets:
            get_provider_class(target.kind)
        order = execution_order(config.jobs, [job.name for job in config.jobs])
        check_staging_conflicts(config.jobs)

        if warnings:
            print("")
            print("Warnings:")
            for warning in warnings:
                print(f"  - {warning}")

        print("")
        print("Configuration is valid.")
        print(f"  Jobs: {len(config.jobs)} ({len(config.get_enabled_jobs())} enabled)")
        print(f"  Targets: {len(config.targets)}")
        print(f"  Sets: {len(config.sets)}")
        print(f"  Order: {' -> '.join(order)}")

        return 0

    except ConfigError as e:
        print(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR


def _init_config(args: argparse.Namespace) -> int:
    """Generate example configuration."""
    content = generate_example_config()

    output = getattr(args, "output", None)
    if output:
        try:
            with open(output, "w") as f:
                f.write(content)
            print(f"Example configuration written to: {output}")
        except OSError as e:
            print(f"Error writing file: {e}")
            return 1
    else:
        print(content)

    return 0
