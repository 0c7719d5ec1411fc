"""CLI dispatcher: argument parsing and subcommand routing."""

import argparse
import sys
from typing import Callable

from .common import add_selection_args, add_verbosity_args


def create_subcommand_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="archive-backup-ng",
        description="Archive backup jobs with dependencies, transfers and retention",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    add_verbosity_args(parser)

    parser.add_argument(
        "-V",
        "--version",
        action="store_true",
        help="Show version and exit",
    )

    parser.add_argument(
        "-c",
        "--config",
        metavar="FILE",
        help="Path to configuration file",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="Available commands (use 'command --help' for details)",
    )

    # run command
    run_parser = subparsers.add_parser(
        "run",
        help="Run backup jobs and sets",
        description="Archive, verify, transfer and prune according to configuration",
    )
    add_selection_args(run_parser)
    run_parser.add_argument(
        "--simulate",
        action="store_true",
        help="Show what would be done without writing or deleting anything",
    )
    run_parser.add_argument(
        "--parallel-targets",
        type=int,
        metavar="N",
        help="Max concurrent target transfers per job (overrides config)",
    )

    # plan command
    plan_parser = subparsers.add_parser(
        "plan",
        help="Show the execution order",
        description="Resolve dependencies and print the order jobs would run in",
    )
    add_selection_args(plan_parser)

    # list command
    list_parser = subparsers.add_parser(
        "list",
        help="Show archive instances",
        description="List archive instances in staging directories and on targets",
    )
    add_selection_args(list_parser, sets=False)
    list_parser.add_argument(
        "--local-only",
        action="store_true",
        help="Do not query targets",
    )

    # prune command
    prune_parser = subparsers.add_parser(
        "prune",
        help="Apply retention policies",
        description="Delete old archive instances locally and on targets",
    )
    add_selection_args(prune_parser, sets=False)
    prune_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be deleted without making changes",
    )

    # pin / unpin commands
    for name, text in (("pin", "Protect"), ("unpin", "Stop protecting")):
        pin_parser = subparsers.add_parser(
            name,
            help=f"{text} an archive from retention",
            description=f"{text} an archive instance from retention via a .pinned marker",
        )
        pin_parser.add_argument("path", metavar="PATH", help="Archive file")

    # status command
    status_parser = subparsers.add_parser(
        "status",
        help="Show recent transactions and statistics",
        description="Display the transaction log summary and recent entries",
    )
    status_parser.add_argument(
        "-n",
        "--limit",
        type=int,
        default=10,
        metavar="N",
        help="Number of transactions to show (default: 10)",
    )

    # config command with subcommands
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Validate or initialize configuration",
    )
    config_subs = config_parser.add_subparsers(dest="config_action")

    config_subs.add_parser(
        "validate",
        help="Validate configuration file",
    )

    init_parser = config_subs.add_parser(
        "init",
        help="Generate example configuration",
    )
    init_parser.add_argument(
        "-o",
        "--output",
        metavar="FILE",
        help="Output file (default: stdout)",
    )

    return parser


def run_subcommand(args: argparse.Namespace) -> int:
    """Run the specified subcommand.

    Args:
        args: Parsed arguments

    Returns:
        Exit code
    """
    from .. import __version__

    if args.version:
        print(f"archive-backup-ng {__version__}")
        return 0

    if not args.command:
        print("No command specified. Use --help for usage information.")
        return 1

    handlers: dict[str, Callable] = {
        "run": cmd_run,
        "plan": cmd_plan,
        "list": cmd_list,
        "prune": cmd_prune,
        "pin": cmd_pin,
        "unpin": cmd_pin,
        "status": cmd_status,
        "config": cmd_config,
    }

    handler = handlers.get(args.command)
    if handler:
        return handler(args)
    else:
        print(f"Unknown command: {args.command}")
        return 1


def cmd_run(args: argparse.Namespace) -> int:
    """Execute run command."""
    from .run import execute_run

    return execute_run(args)


def cmd_plan(args: argparse.Namespace) -> int:
    """Execute plan command."""
    from .run import execute_plan

    return execute_plan(args)


def cmd_list(args: argparse.Namespace) -> int:
    """Execute list command."""
    from .list_cmd import execute_list

    return execute_list(args)


def cmd_prune(args: argparse.Namespace) -> int:
    """Execute prune command."""
    from .prune import execute_prune

    return execute_prune(args)


def cmd_pin(args: argparse.Namespace) -> int:
    """Execute pin/unpin command."""
    from .pin import execute_pin

    return execute_pin(args)


def cmd_status(args: argparse.Namespace) -> int:
    """Execute status command."""
    from .status import execute_status

    return execute_status(args)


def cmd_config(args: argparse.Namespace) -> int:
    """Execute config command."""
    from .config_cmd import execute_config

    return execute_config(args)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for archive-backup-ng CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = create_subcommand_parser()
    args = parser.parse_args(argv)

    return run_subcommand(args)
