"""List command: Show archive instances."""

import argparse
import logging
from pathlib import Path

from rich.table import Table

from .. import __logger__, __util__
from ..__logger__ import create_logger
from ..config import ConfigError, JobConfig
from ..core.context import RunContext
from ..core.models import EXIT_CONFIG_ERROR
from ..instances import BackupInstance, group_instances, list_directory
from .common import get_log_level, load_cli_config, select_jobs

logger = logging.getLogger(__name__)


def execute_list(args: argparse.Namespace) -> int:
    """Execute the list command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code
    """
    create_logger(get_log_level(args))

    try:
        config, _ = load_cli_config(args)
        jobs = select_jobs(config, getattr(args, "job", []))
        context = RunContext.from_config(config)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG_ERROR

    if not jobs:
        print("No jobs configured")
        return 1

    errors = 0
    for job in jobs:
        staging = Path(job.staging_dir).expanduser()
        local = group_instances(list_directory(staging), job.archive_name, job.date_format)
        _print_instances(job, f"local {staging}", local)

        if getattr(args, "local_only", False):
            continue
        for target_name in job.targets:
            target = context.targets.get(target_name)
            if target is None:
                continue
            try:
                listing = target.provider.list_remote(target.settings)
            except Exception as e:
                logger.error("Cannot list %s: %s", target_name, e)
                errors += 1
                continue
            remote = group_instances(listing, job.archive_name, job.date_format)
            _print_instances(job, f"target {target_name}", remote)

    return 1 if errors else 0


def _print_instances(job: JobConfig, where: str, instances: dict[str, BackupInstance]) -> None:
    table = Table(title=f"{job.name} ({where})")
    table.add_column("Instance")
    table.add_column("Created")
    table.add_column("Files", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Pinned")

    for instance in sorted(instances.values(), key=lambda i: (i.sort_time, i.key)):
        table.add_row(
            instance.key,
            instance.sort_time.strftime("%Y-%m-%d %H:%M:%S"),
            str(len(instance.files)),
            __util__.format_size(instance.size),
            "yes" if instance.is_pinned or instance.key in job.pinned else "",
        )

    if instances:
        __logger__.cons.print(table)
    else:
        print(f"{job.name} ({where}): no archives")
