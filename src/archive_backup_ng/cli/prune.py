"""Prune command: Apply retention policies."""

import argparse
import logging
import time

from .. import __util__
from ..__logger__ import create_logger
from ..config import ConfigError
from ..core.context import RunContext
from ..core.dispatch import TransferDispatcher
from ..core.models import EXIT_CONFIG_ERROR
from ..core.pipeline import prune_staging
from ..errors import RetentionError
from ..retention import format_retention_summary
from .common import get_log_level, load_cli_config, select_jobs

logger = logging.getLogger(__name__)


def execute_prune(args: argparse.Namespace) -> int:
    """Execute the prune command.

    Applies the keep counts of every selected job to its staging directory
    and to each of its targets that defines ``keep``.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code
    """
    create_logger(get_log_level(args))

    dry_run = getattr(args, "dry_run", False)
    try:
        config, _ = load_cli_config(args)
        jobs = select_jobs(config, getattr(args, "job", []))
        context = RunContext.from_config(config, simulate=dry_run)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG_ERROR

    if not jobs:
        logger.error("No jobs configured")
        return 1

    if dry_run:
        logger.info("Dry run mode - showing what would be deleted")

    logger.info(__util__.log_heading(f"Pruning archives at {time.ctime()}"))

    dispatcher = TransferDispatcher(context)
    total_deleted = 0
    errors = 0

    for job in jobs:
        logger.info("Job: %s", job.name)

        if job.local_keep > 0:
            try:
                plan, outcome = prune_staging(job, dry_run=dry_run)
            except RetentionError as e:
                logger.error("  Cannot prune %s locally: %s", job.name, e)
                errors += 1
            else:
                print(f"  {job.name} [local]: {format_retention_summary(plan)}")
                total_deleted += len(outcome.deleted)
                errors += len(outcome.errors)
        else:
            print(f"  {job.name} [local]: keep=unlimited")

        for target_name in job.targets:
            target = context.targets.get(target_name)
            if target is None or target.settings.keep is None:
                continue
            try:
                outcome = dispatcher.prune_target(job, target)
            except Exception as e:
                logger.error("  Cannot prune %s on %s: %s", job.name, target_name, e)
                errors += 1
                continue
            deleted = len(outcome.deleted)
            verb = "would delete" if dry_run else "deleted"
            print(f"  {job.name} [{target_name}]: {verb} {deleted} file(s)")
            total_deleted += deleted
            errors += len(outcome.errors)

    logger.info(__util__.log_heading("Summary"))
    logger.info("%s %d file(s)", "Would delete" if dry_run else "Deleted", total_deleted)
    if dry_run:
        logger.info("Dry run complete - no changes made")
    if errors:
        logger.warning("Prune finished with %d error(s)", errors)
        return 1
    logger.info("Prune complete")
    return 0
