"""Main entry point for the Relief Workflow Orchestrator."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from rich.markup import escape
from rich.table import Table

from relief_orchestrator.config import Settings, clear_settings_cache, get_settings
from relief_orchestrator.core import Orchestrator
from relief_orchestrator.errors import OrchestratorError
from relief_orchestrator.handlers import RunOptions
from relief_orchestrator.utils.logger import console, force_utf8_output, print_banner, setup_logging

logger = logging.getLogger(__name__)

EXAMPLES = """
Examples:
  relief-orchestrator development
  relief-orchestrator production --continue-on-error
  relief-orchestrator status
"""


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="relief-orchestrator",
        description="Relief Workflow Orchestrator - run build, deploy and maintenance workflows",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EXAMPLES,
    )

    parser.add_argument(
        "command",
        nargs="?",
        help="Workflow to run (default: development), 'status' or 'help'",
    )

    parser.add_argument(
        "--continue-on-error",
        action="store_true",
        help="Continue workflow even if tasks fail",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    parser.add_argument(
        "-c", "--config",
        type=str,
        help="Path to config file (default: automation-config.json)",
    )

    return parser


def print_help(parser: argparse.ArgumentParser, settings: Settings) -> None:
    """Print usage with the configured workflows."""
    console.print(escape(parser.format_usage()))

    table = Table(title="Workflows", title_justify="left", show_lines=False)
    table.add_column("Command", style="cyan", no_wrap=True)
    table.add_column("Tasks")
    for name, workflow in settings.workflows.items():
        label = name + (" (default)" if name == settings.default_workflow else "")
        description = f"{workflow.description}\n" if workflow.description else ""
        table.add_row(escape(label), escape(description + " -> ".join(workflow.tasks)))
    table.add_row("status", "Show current status")
    table.add_row("help", "Show this help")
    console.print(table)

    console.print(
        "\nOptions:\n"
        "  --continue-on-error    Continue workflow even if tasks fail\n"
        "  -v, --verbose          Enable verbose logging\n"
        "  -c, --config PATH      Path to config file"
    )
    console.print(escape(EXAMPLES))


def collect_status(orchestrator: Orchestrator) -> dict[str, Any]:
    """Current state plus what previous runs left behind."""
    status = orchestrator.get_status()

    try:
        with open(orchestrator.final_state_path, "r", encoding="utf-8") as f:
            status["saved_state"] = json.load(f)
    except (OSError, ValueError):
        status["saved_state"] = None

    reports = orchestrator.reports.list_reports()
    status["latest_report"] = str(reports[-1]) if reports else None
    return status


async def run_workflow(orchestrator: Orchestrator, workflow_name: str, options: RunOptions) -> int:
    """Run a workflow with signal handling. Returns the exit code."""
    orchestrator.install_signal_handlers()

    try:
        run = await orchestrator.run_workflow(workflow_name, options)
    except OrchestratorError as e:
        logger.error(f"Orchestrator error: {e}")
        return 1

    if orchestrator.shutdown_requested:
        orchestrator.cleanup()

    return 0 if run.overall_success else 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    force_utf8_output()
    parser = build_parser()
    args = parser.parse_args(argv)

    # Setup logging; startup records reach the log file once it exists
    log_level = logging.DEBUG if args.verbose else logging.INFO
    setup_logging(level=log_level, buffer=True)

    # Load settings
    clear_settings_cache()
    settings = get_settings(args.config)
    command = args.command or settings.default_workflow

    if command == "help":
        print_help(parser, settings)
        return 0

    orchestrator = Orchestrator(settings)
    try:
        orchestrator.initialize()
    except OrchestratorError as e:
        logger.error(f"Orchestrator error: {e}")
        return 1

    # Working directories exist now, add the persistent log
    setup_logging(level=log_level, log_file=settings.log_path)

    if command == "status":
        console.print_json(json.dumps(collect_status(orchestrator)))
        return 0

    print_banner()
    options = RunOptions(
        continue_on_error=args.continue_on_error,
        verbose=args.verbose,
    )
    return asyncio.run(run_workflow(orchestrator, command, options))


if __name__ == "__main__":
    sys.exit(main())
