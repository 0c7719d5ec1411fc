"""Status command: Show recent transactions and statistics."""

import argparse
import logging

from rich.table import Table

from .. import __logger__, __util__
from ..__logger__ import create_logger
from ..config import ConfigError
from ..core.models import EXIT_CONFIG_ERROR
from ..transaction import get_transaction_log, get_transaction_stats, read_transaction_log
from .common import get_log_level, load_cli_config

logger = logging.getLogger(__name__)


def execute_status(args: argparse.Namespace) -> int:
    """Execute the status command.

    Shows per-job last results and the most recent transactions.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code
    """
    create_logger(get_log_level(args))

    try:
        config, config_path = load_cli_config(args)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG_ERROR

    print("archive-backup-ng Status")
    print("=" * 60)
    print(f"Config: {config_path}")
    print(
        f"Jobs: {len(config.jobs)} configured, {len(config.get_enabled_jobs())} enabled"
    )
    print(f"Targets: {len(config.targets)}, sets: {len(config.sets)}")
    print("")

    log_path = get_transaction_log()
    if log_path is None:
        print("Transaction log is disabled (set global.transaction_log to enable it)")
        return 0

    stats = get_transaction_stats()
    print(f"Transaction log: {log_path} ({stats['total']} entries)")
    for action, counts in sorted(stats["by_action"].items()):
        summary = ", ".join(f"{status}={n}" for status, n in sorted(counts.items()))
        print(f"  {action}: {summary}")
    print(f"  Transferred: {__util__.format_size(stats['bytes_transferred'])}")
    print("")

    all_healthy = True
    for job in config.jobs:
        last = stats["last_job_status"].get(job.name)
        if last in ("failure", "skipped"):
            all_healthy = False
        print(f"  {job.name}: {last or 'never run'}")
    print("")

    limit = getattr(args, "limit", 10)
    records = read_transaction_log(limit=limit)
    if records:
        table = Table(title=f"Last {len(records)} transaction(s)")
        for column in ("Time", "Action", "Status", "Job", "Target", "Size", "Error"):
            table.add_column(column)
        for record in records:
            size = record.get("size_bytes")
            table.add_row(
                record.get("timestamp", "")[:19],
                record.get("action", ""),
                record.get("status", ""),
                record.get("job", ""),
                record.get("target", ""),
                __util__.format_size(size) if size is not None else "",
                record.get("error", ""),
            )
        __logger__.cons.print(table)

    if not all_healthy:
        print("Some jobs did not succeed on their last run.")
        return 1
    return 0
