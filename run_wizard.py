#!/usr/bin/env python3
"""
ClickHouse / Flat File Ingestion Wizard

CLI entry point that walks one wizard session from direction to transfer.

Usage:
    python run_wizard.py --direction export --table events --output ./downloads
    python run_wizard.py --direction import --upload ./events.csv --target-table events
    python run_wizard.py --direction export --list-tables
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console

from src.cli.display import WizardDisplay
from src.connections import IntegrationClient
from src.logging_config import get_logger, setup_logging
from src.wizard import (
    ConnectionConfig,
    Direction,
    FileConfig,
    IngestionWizard,
    IngestionWizardError,
    PreviewState,
    UploadedFile,
    WizardSettings,
)

console = Console()
logger = get_logger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="ClickHouse / Flat File Ingestion Wizard",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_wizard.py --direction export --table events
  python run_wizard.py --direction export --table events --exclude payload --auto-approve
  python run_wizard.py --direction import --file /data/events.csv --target-table events
  python run_wizard.py --direction import --upload ./events.csv --delimiter ";" --target-table events
  python run_wizard.py --health

Environment Variables:
  INGESTION_API_URL     - Integration service base URL
  CLICKHOUSE_HOST       - ClickHouse hostname
  CLICKHOUSE_PORT       - ClickHouse HTTP port (default: 8123)
  CLICKHOUSE_DB         - ClickHouse database
  CLICKHOUSE_USER       - ClickHouse user
  CLICKHOUSE_JWT        - JWT token for ClickHouse
  CLICKHOUSE_SECURE     - Use TLS (true/false)
        """,
    )

    parser.add_argument(
        "--direction",
        choices=[d.value for d in Direction],
        help="export: ClickHouse -> flat file, import: flat file -> ClickHouse",
    )
    parser.add_argument("--table", help="ClickHouse source table (export)")
    parser.add_argument("--target-table", help="ClickHouse target table (import)")

    file_group = parser.add_mutually_exclusive_group()
    file_group.add_argument("--file", help="Path or URL of the flat file, read by the service")
    file_group.add_argument("--upload", help="Local flat file sent along with each request")

    parser.add_argument("--delimiter", default=",", help="Field delimiter (default: ,)")
    parser.add_argument("--no-header", action="store_true", help="The flat file has no header row")
    parser.add_argument("--encoding", default="UTF-8", help="Flat file encoding (default: UTF-8)")

    parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        metavar="COLUMN",
        help="Leave COLUMN out of the transfer (repeatable)",
    )
    parser.add_argument(
        "--join-table",
        action="append",
        default=[],
        metavar="TABLE",
        help="Additional ClickHouse table to join (repeatable, export only)",
    )
    parser.add_argument("--join-condition", help="JOIN condition for --join-table")

    parser.add_argument(
        "-o",
        "--output",
        help="Directory for exported files (default: INGESTION_DOWNLOAD_DIR or ./downloads)",
    )
    parser.add_argument("--base-url", help="Integration service base URL")

    parser.add_argument(
        "--auto-approve",
        action="store_true",
        help="Start the transfer without a confirmation prompt",
    )
    parser.add_argument(
        "--test-connection",
        action="store_true",
        help="Test the ClickHouse connection before continuing",
    )
    parser.add_argument(
        "--list-tables",
        action="store_true",
        help="List the ClickHouse tables and exit",
    )
    parser.add_argument("--health", action="store_true", help="Check the service and exit")

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug logging",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress detailed output",
    )

    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> WizardSettings:
    settings = WizardSettings.from_env()
    overrides = {}
    if args.base_url:
        overrides["api_base_url"] = args.base_url
    if args.output:
        overrides["download_dir"] = args.output
    return settings.model_copy(update=overrides)


def validate_args(args: argparse.Namespace) -> Optional[str]:
    """Return an error message for argument combinations that cannot work."""
    if args.health:
        return None
    if not args.direction:
        return "--direction is required"

    direction = Direction(args.direction)
    if args.list_tables and direction is not Direction.EXPORT:
        return "--list-tables needs a ClickHouse source (--direction export)"
    if args.list_tables:
        return None
    if direction is Direction.EXPORT and not args.table:
        return "--table is required for export"
    if direction is Direction.IMPORT:
        if not (args.file or args.upload):
            return "--file or --upload is required for import"
        if not args.target_table:
            return "--target-table is required for import"
        if args.join_table:
            return "--join-table is only available for export"
    if bool(args.join_table) != bool(args.join_condition):
        return "--join-table and --join-condition must be given together"
    return None


def exclude_columns(wizard: IngestionWizard, names: list[str]) -> list[str]:
    """Deselect ``names``; returns the ones that were not discovered."""
    wanted = {name.lower() for name in names}
    found = set()
    for col in wizard.columns.columns:
        if col.name.lower() in wanted:
            found.add(col.name.lower())
            if col.selected:
                wizard.columns.toggle(col.position)
    return [name for name in names if name.lower() not in found]


def transfer_details(wizard: IngestionWizard, settings: WizardSettings) -> dict:
    """Summarize the pending transfer for the confirmation prompt."""
    snapshot = wizard.store.snapshot()
    details = {"direction": snapshot.direction.value}
    if snapshot.direction is Direction.EXPORT:
        details["source table"] = snapshot.table_name
        details["target directory"] = settings.download_dir
    else:
        details["source file"] = (
            snapshot.upload.filename if snapshot.upload else snapshot.flat_file_config.file_name
        )
        details["target table"] = snapshot.target_table_name
    details["columns"] = [col.name for col in snapshot.included_columns]
    return details


async def run(args: argparse.Namespace) -> int:
    settings = build_settings(args)
    client = IntegrationClient(settings)
    display = WizardDisplay(auto_approve=args.auto_approve, quiet=args.quiet)

    if args.health:
        status = await client.health_check()
        console.print(f"[green]Service is up:[/green] {status or 'OK'}")
        return 0

    wizard = IngestionWizard(client, settings)
    display.attach(wizard.events)
    wizard.events.subscribe_all(lambda event: logger.debug(f"Event: {event.to_dict()}"))

    direction = Direction(args.direction)
    wizard.choose_direction(direction)
    wizard.configure_clickhouse(ConnectionConfig.from_env())

    # Step 1: connection
    if args.test_connection or args.list_tables:
        display.display_progress("Connection", "Testing ClickHouse connection")
        status = await wizard.test_connection()
        display.display_status("Connection", status)
        if status is None or status.is_error:
            return 1

    if args.list_tables:
        status = await wizard.list_tables()
        display.display_status("Tables", status)
        if status is None or status.is_error:
            return 1
        display.display_tables(wizard.discovery.tables)
        return 0

    # Step 2: source and target
    file_config = FileConfig(
        file_name=args.file,
        delimiter=args.delimiter,
        has_header=not args.no_header,
        encoding=args.encoding,
    )
    upload = UploadedFile.from_path(Path(args.upload)) if args.upload else None
    wizard.configure_file(file_config, upload)

    if direction is Direction.EXPORT:
        wizard.select_table(args.table)
        if args.join_table:
            wizard.configure_join(args.join_table, args.join_condition)
    else:
        wizard.set_target_table(args.target_table)

    # Step 3: columns
    display.display_progress("Columns", "Loading source schema")
    status = await wizard.load_columns()
    display.display_status("Columns", status)
    if not wizard.columns.has_columns:
        return 1

    unknown = exclude_columns(wizard, args.exclude)
    for name in unknown:
        logger.warning(f"Column to exclude not found: {name}")
    if not args.quiet:
        display.display_columns(wizard.columns.columns)
    if not wizard.columns.selected:
        console.print("[red]Error: every column is excluded[/red]")
        return 1

    # Step 4: preview
    display.display_progress("Preview", "Fetching sample rows")
    state = await wizard.fetch_preview()
    display.display_status("Preview", wizard.preview.status)
    if state == PreviewState.FAILED:
        return 1
    if not args.quiet:
        display.display_preview(wizard.preview.result)

    # Step 5: transfer
    if not display.request_approval("start_ingestion", transfer_details(wizard, settings)):
        console.print("[yellow]Transfer not started[/yellow]")
        return 1

    result = await wizard.start_ingestion()
    display.display_status("Ingestion", wizard.executor.status)
    if result is not None:
        display.display_result(result)

    display.display_summary(wizard.context.to_summary())
    return 0 if result is not None else 1


async def main() -> int:
    """Main entry point."""
    args = parse_args()

    log_level = "DEBUG" if args.verbose else "INFO"
    if args.quiet:
        log_level = "WARNING"
    setup_logging(level=log_level)
    logger.debug("Ingestion wizard starting")

    error = validate_args(args)
    if error:
        console.print(f"[red]Error: {error}[/red]")
        console.print("Use --help for usage information")
        return 1

    try:
        return await run(args)

    except KeyboardInterrupt:
        logger.warning("Wizard cancelled by user")
        console.print("\n[yellow]Wizard cancelled by user[/yellow]")
        return 130

    except (IngestionWizardError, OSError) as e:
        logger.error(f"Wizard stopped: {e}")
        console.print(f"\n[red]Error: {e}[/red]")
        return 1

    except Exception as e:
        logger.exception("Wizard failed with an unexpected error")
        console.print(f"\n[red]Wizard failed: {e}[/red]")
        return 1


if __name__ == "__main__":
    try:
        exit_code = asyncio.run(main())
    except KeyboardInterrupt:
        exit_code = 130
    sys.exit(exit_code)
