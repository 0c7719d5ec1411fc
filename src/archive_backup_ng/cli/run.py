"""Run command: Execute backup jobs and sets."""

import argparse
import logging
import signal
import time
from contextlib import contextmanager

from rich.markup import escape
from rich.table import Table

from .. import __logger__, __util__
from ..__logger__ import create_logger
from ..config import ConfigError
from ..core.aggregate import RunAggregator
from ..core.context import RunContext
from ..core.models import EXIT_CONFIG_ERROR, JobStatus, RunResult
from .common import get_log_level, load_cli_config

logger = logging.getLogger(__name__)

STATUS_STYLES = {
    JobStatus.SUCCESS: "green",
    JobStatus.WARNINGS: "yellow",
    JobStatus.FAILURE: "red",
    JobStatus.SKIPPED: "dim",
}


def execute_run(args: argparse.Namespace) -> int:
    """Execute the run command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code (0 success, 1 warnings, 2 failure, 3 configuration error)
    """
    create_logger(get_log_level(args))

    try:
        config, _ = load_cli_config(args)
        context = RunContext.from_config(
            config,
            simulate=getattr(args, "simulate", False),
            parallel_targets=getattr(args, "parallel_targets", None),
        )
        aggregator = RunAggregator(context)
        plans = aggregator.plan(getattr(args, "sets", []), getattr(args, "job", []))
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG_ERROR

    result = RunResult(simulated=context.simulate)
    with _cancel_on_interrupt(context):
        for plan in plans:
            result.sets.append(aggregator.execute(plan))
    result.cancelled = context.cancelled
    result.completed_at = time.time()

    print_run_summary(result)
    return result.exit_code


def execute_plan(args: argparse.Namespace) -> int:
    """Print the execution order without running anything."""
    create_logger(get_log_level(args))

    try:
        config, _ = load_cli_config(args)
        aggregator = RunAggregator(RunContext(config=config))
        plans = aggregator.plan(getattr(args, "sets", []), getattr(args, "job", []))
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG_ERROR

    for plan in plans:
        print(f"{plan.label} (on_error={plan.on_error}):")
        if not plan.order:
            print("  (no jobs)")
        for position, name in enumerate(plan.order, 1):
            job = config.get_job(name)
            deps = plan.graph.dependencies_of(name)
            line = f"  {position}. {name}"
            if deps:
                line += f"  (after {', '.join(deps)})"
            if job is not None and not job.enabled:
                line += "  [disabled, required as dependency]"
            print(line)
    return 0


@contextmanager
def _cancel_on_interrupt(context: RunContext):
    """Turn the first Ctrl-C into a cancellation request.

    The running stage completes, remaining stages and jobs are skipped. A
    second Ctrl-C raises KeyboardInterrupt as usual.
    """

    def handler(signum, frame):
        if context.cancelled:
            raise KeyboardInterrupt
        logger.warning("Interrupt received, cancelling after the current stage...")
        context.cancel()

    try:
        previous = signal.signal(signal.SIGINT, handler)
    except ValueError:
        # Not in the main thread
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def print_run_summary(result: RunResult) -> None:
    """Print one row per job with its status and transfer outcome."""
    table = Table(title=f"Run result: {result.status.value}", show_lines=False)
    table.add_column("Set")
    table.add_column("Job")
    table.add_column("Status")
    table.add_column("Targets")
    table.add_column("Duration", justify="right")
    table.add_column("Details")

    for set_result in result.sets:
        for job in set_result.jobs:
            style = STATUS_STYLES[job.status]
            if job.transfers:
                ok = sum(1 for t in job.transfers if t.success)
                targets = f"{ok}/{len(job.transfers)}"
            else:
                targets = "-"
            details = job.error or _first_problem(job)
            table.add_row(
                set_result.name or "-",
                escape(job.job_name),
                f"[{style}]{job.status.value}[/{style}]",
                targets,
                f"{job.duration:.1f}s",
                escape(details),
            )

    __logger__.cons.print(table)
    if result.simulated:
        __logger__.cons.print("Simulation only: no archives were written or deleted.")
    if result.cancelled:
        __logger__.cons.print("[red]Run was cancelled.[/red]")
    logger.debug(__util__.log_heading(f"exit code {result.exit_code}"))


def _first_problem(job) -> str:
    for outcome in job.stages:
        if outcome.status.severity > 0:
            return f"{outcome.stage.value}: {outcome.message}"
    return ""
