"""Command-line entry point.

Subcommands:
    validate  -- check env vars, run configuration and workspace connectivity
    run       -- execute the analysis and print the ranked delta table
"""

import argparse
import csv
import json
import logging
import sys

from rich.console import Console
from rich.table import Table

from baseline_delta.config import (
    load_delta_config,
    load_settings,
    validate_and_display,
    validate_env_vars,
)
from baseline_delta.engine import BaselineDeltaEngine
from baseline_delta.errors import BaselineDeltaError, SourceUnavailableError
from baseline_delta.hunting_client import HuntingClient
from baseline_delta.models import DeltaReport, format_relative_time

_COLUMNS = [
    "EventTime",
    "Entity",
    "Count",
    "AdditionalData",
    "MachineId",
    "DataType",
    "ComputerName",
    "BadMachinesCount",
]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="baseline-delta",
        description="Surface activity on suspect machines never seen on known good machines.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("validate", help="Check configuration and workspace connectivity")

    run_parser = subparsers.add_parser("run", help="Run the baseline delta analysis")
    run_parser.add_argument("--limit", type=int, default=0, help="Show at most N rows (0 = all)")
    run_parser.add_argument("--csv", metavar="PATH", help="Also write all rows to a CSV file")
    run_parser.add_argument("--json", action="store_true", help="Print JSON instead of a table")
    return parser


def render_table(report: DeltaReport, limit: int = 0) -> Table:
    """Build a rich table of the ranked rows, truncated to limit when set."""
    table = Table(title=f"Baseline Delta ({len(report.rows)} rows)")
    table.add_column("Bad Machines", justify="right", style="bold")
    table.add_column("Computer")
    table.add_column("Data Type")
    table.add_column("Entity", overflow="fold")
    table.add_column("Count", justify="right")
    table.add_column("Last Seen")
    table.add_column("Additional Data", overflow="fold")

    rows = report.rows[:limit] if limit > 0 else report.rows
    for row in rows:
        table.add_row(
            str(row.bad_machines_count),
            row.computer_name or row.machine_id,
            row.data_type,
            row.entity,
            str(row.count),
            format_relative_time(row.event_time),
            ", ".join(row.additional_data),
        )
    return table


def write_csv(report: DeltaReport, path: str) -> None:
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=_COLUMNS)
        writer.writeheader()
        for row in report.rows:
            writer.writerow(row.to_dict())


def run_analysis(args: argparse.Namespace) -> int:
    """Execute a run and print the result. Returns the process exit code."""
    console = Console()

    _passed, failed = validate_env_vars()
    if failed:
        console.print(f"[red]Configuration error:[/red] {len(failed)} required env var(s) missing:")
        for var_desc in failed:
            console.print(f"  - {var_desc}")
        return 1

    try:
        config = load_delta_config()
        settings = load_settings()
        client = HuntingClient(settings)
        engine = BaselineDeltaEngine(client, client, max_workers=settings.max_workers)
        report = engine.run(config)
    except SourceUnavailableError as e:
        console.print(f"[red]Run failed:[/red] {e}")
        if e.error.retry_possible:
            console.print("The workspace reported a transient error; run again to retry.")
        return 1
    except BaselineDeltaError as e:
        console.print(f"[red]Run failed:[/red] {e}")
        return 1

    if args.csv:
        write_csv(report, args.csv)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        console.print(render_table(report, args.limit))
        if report.unresolved_hosts:
            console.print(f"[yellow]Unresolved hosts:[/yellow] {', '.join(report.unresolved_hosts)}")
        if report.failed_categories:
            console.print(
                f"[red]Categories missing from this run:[/red] {', '.join(report.failed_categories)}"
            )
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # The Azure SDK logs every HTTP request at INFO
    logging.getLogger("azure").setLevel(logging.WARNING)

    if args.command == "validate":
        return validate_and_display()
    return run_analysis(args)
