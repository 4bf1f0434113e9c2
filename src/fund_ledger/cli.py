"""Command-line interface for the Nonprofit Fund Ledger."""

import argparse
import json
import sys
from pathlib import Path
from uuid import UUID

from fund_ledger import __version__
from fund_ledger.config import DatabaseType, get_settings
from fund_ledger.container import Container
from fund_ledger.exceptions import FundLedgerError
from fund_ledger.logging_config import configure_logging
from fund_ledger.parsers.tabular import load_tabular
from fund_ledger.repositories.sqlite import SQLiteDatabase
from fund_ledger.services.import_analysis import ImportSettings
from fund_ledger.services.import_execution import ImportBatch


def get_default_db_path() -> Path:
    """Database path from settings (FLG_SQLITE_PATH)."""
    return Path(get_settings().sqlite_path)


def _db_path(args: argparse.Namespace) -> Path:
    return Path(args.database) if args.database else get_default_db_path()


def open_container(db_path: Path) -> Container:
    """Build a container over an existing SQLite database file."""
    settings = get_settings().model_copy(
        update={"database_type": DatabaseType.SQLITE, "sqlite_path": db_path}
    )
    db = SQLiteDatabase(str(db_path))
    db.initialize()
    return Container(settings=settings, database=db)


def _require_database(args: argparse.Namespace) -> Path | None:
    db_path = _db_path(args)
    if not db_path.exists():
        print(f"Error: Database not found at {db_path}")
        print("Run 'fund-ledger init' to create a new database")
        return None
    return db_path


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize a new database."""
    db_path = _db_path(args)

    if db_path.exists() and not args.force:
        print(f"Database already exists at {db_path}")
        print("Use --force to reinitialize (WARNING: will delete existing data)")
        return 1

    if db_path.exists() and args.force:
        db_path.unlink()

    db_path.parent.mkdir(parents=True, exist_ok=True)
    db = SQLiteDatabase(str(db_path))
    db.initialize()
    db.close()

    print(f"Initialized database at {db_path}")
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    """Show version information."""
    print(f"Nonprofit Fund Ledger v{__version__}")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show entities with their account, fund and entry counts."""
    db_path = _require_database(args)
    if db_path is None:
        return 1

    with open_container(db_path) as container:
        ledger = container.ledger_service
        entities = ledger.list_entities()
        print(f"Database: {db_path}")
        print(f"Entities: {len(entities)}")
        for entity in entities:
            accounts = ledger.list_accounts(entity.id)
            funds = ledger.list_funds(entity.id)
            entries = ledger.list_journal_entries(entity.id)
            print(
                f"  - {entity.name} ({entity.code}) [{entity.status.value}]: "
                f"{len(accounts)} accounts, {len(funds)} funds, {len(entries)} entries"
            )
        jobs = container.import_coordinator.list_jobs()
        print(f"Imports: {len(jobs)}")
    return 0


def cmd_analyze(args: argparse.Namespace) -> int:
    """Analyze an import file and print the findings."""
    file_path = Path(args.file)
    if not file_path.exists():
        print(f"Error: File not found: {file_path}")
        return 1

    try:
        table = load_tabular(str(file_path))
        analysis = Container(settings=get_settings()).import_analyzer.analyze(
            table.headers,
            table.rows,
            file_name=table.file_name,
            file_size=table.file_size,
            source_format=table.source_format,
        )
    except FundLedgerError as e:
        print(f"Error: {e.message}")
        return 1

    if args.json:
        print(
            json.dumps(
                {
                    "analysis": analysis.to_dict(),
                    "importConfig": analysis.import_config.to_dict(),
                },
                indent=2,
            )
        )
        return 0

    report = analysis.to_dict()
    summary = report["summary"]
    volume = report["volumeEstimates"]
    print(f"File: {summary['fileName']} ({summary['fileSize']})")
    print(f"Rows: {summary['totalRows']}")
    print(
        f"Dates: {summary['dateRange']['startDate']} to {summary['dateRange']['endDate']}"
        f" (format {summary['detectedDateFormat']})"
    )
    print(f"Transactions: {volume['uniqueTransactions']}")
    print(
        f"Entities: {volume['uniqueEntities']}  Funds: {volume['uniqueFunds']}  "
        f"Accounts: {volume['uniqueAccounts']}"
    )
    print("Mapping:")
    for target, header in analysis.import_config.column_mapping.to_dict().items():
        print(f"  {target}: {header}")
    print("Recommendations:")
    for recommendation in report["recommendations"]:
        print(f"  - {recommendation}")
    return 1 if analysis.has_critical_issues else 0


def cmd_import(args: argparse.Namespace) -> int:
    """Import a file as posted journal entries in one unit of work."""
    file_path = Path(args.file)
    if not file_path.exists():
        print(f"Error: File not found: {file_path}")
        return 1
    db_path = _require_database(args)
    if db_path is None:
        return 1

    with open_container(db_path) as container:
        try:
            table = load_tabular(str(file_path))
            analysis = container.import_analyzer.analyze(
                table.headers, table.rows, file_name=table.file_name
            )
            default_entity_id = None
            if args.entity:
                entity = container.entity_repository.get_by_code(args.entity)
                if entity is None:
                    print(f"Error: Entity code not found: {args.entity}")
                    return 1
                default_entity_id = entity.id

            batch = ImportBatch(
                headers=table.headers,
                rows=table.rows,
                mapping=analysis.import_config.column_mapping,
                file_name=table.file_name,
                date_format=analysis.import_config.date_format,
                settings=ImportSettings(
                    skip_rows_with_missing_data=args.skip_missing,
                    auto_create_master_records=args.auto_create,
                ),
                default_entity_id=default_entity_id,
            )
            job = container.import_coordinator.run(batch)
        except FundLedgerError as e:
            print(f"Error: {e.message}")
            return 1

    print(f"Import {job.id}: {job.status.value}")
    print(f"  Transactions: {job.processed_records}/{job.total_records}")
    print(f"  Entries created: {job.entries_created}")
    for error in job.errors[:10]:
        print(f"  - {error}")
    if len(job.errors) > 10:
        print(f"  ... and {len(job.errors) - 10} more")
    return 0 if job.status.value == "completed" else 1


def cmd_history(args: argparse.Namespace) -> int:
    """List import jobs, newest first."""
    db_path = _require_database(args)
    if db_path is None:
        return 1

    with open_container(db_path) as container:
        jobs = container.import_coordinator.list_jobs()

    if not jobs:
        print("No imports found")
        return 0
    for job in jobs:
        print(
            f"{job.id}  {job.started_at:%Y-%m-%d %H:%M}  {job.status.value:<12} "
            f"{job.entries_created:>6} entries  {job.file_name or ''}"
        )
    return 0


def cmd_rollback(args: argparse.Namespace) -> int:
    """Delete all journal entries written by an import."""
    db_path = _require_database(args)
    if db_path is None:
        return 1

    try:
        import_id = UUID(args.import_id)
    except ValueError:
        print(f"Error: Invalid import id: {args.import_id}")
        return 1

    with open_container(db_path) as container:
        try:
            result = container.import_coordinator.rollback(import_id)
        except FundLedgerError as e:
            print(f"Error: {e.message}")
            return 1

    print(f"Rolled back import {result.import_id}: {result.deleted_entries} entries deleted")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the REST API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "fund_ledger.api.app:app",
        host=args.host or settings.api_host,
        port=args.port or settings.api_port,
        reload=args.reload or settings.api_reload,
        workers=settings.api_workers,
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="fund-ledger",
        description="Nonprofit Fund Ledger - multi-entity fund accounting",
    )
    parser.add_argument(
        "--database",
        "-d",
        help="Path to SQLite database file",
        default=None,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init command
    init_parser = subparsers.add_parser("init", help="Initialize a new database")
    init_parser.add_argument(
        "--force",
        "-f",
        action="store_true",
        help="Force reinitialization (deletes existing data)",
    )
    init_parser.set_defaults(func=cmd_init)

    # status command
    status_parser = subparsers.add_parser("status", help="Show database status")
    status_parser.set_defaults(func=cmd_status)

    # version command
    version_parser = subparsers.add_parser("version", help="Show version")
    version_parser.set_defaults(func=cmd_version)

    # analyze command
    analyze_parser = subparsers.add_parser("analyze", help="Analyze an import file")
    analyze_parser.add_argument("file", help="CSV or Excel file to analyze")
    analyze_parser.add_argument(
        "--json", action="store_true", help="Print the full analysis as JSON"
    )
    analyze_parser.set_defaults(func=cmd_analyze)

    # import command
    import_parser = subparsers.add_parser("import", help="Import a journal export")
    import_parser.add_argument("file", help="CSV or Excel file to import")
    import_parser.add_argument(
        "--entity", "-e", help="Default entity code for rows without one", default=None
    )
    import_parser.add_argument(
        "--skip-missing",
        action="store_true",
        help="Skip rows with missing required data instead of failing",
    )
    import_parser.add_argument(
        "--auto-create",
        action="store_true",
        help="Create missing accounts and funds",
    )
    import_parser.set_defaults(func=cmd_import)

    # history command
    history_parser = subparsers.add_parser("history", help="List import jobs")
    history_parser.set_defaults(func=cmd_history)

    # rollback command
    rollback_parser = subparsers.add_parser("rollback", help="Roll back an import")
    rollback_parser.add_argument("import_id", help="Import ID to roll back")
    rollback_parser.set_defaults(func=cmd_rollback)

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Run the REST API")
    serve_parser.add_argument("--host", default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Port")
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload (development only)"
    )
    serve_parser.set_defaults(func=cmd_serve)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    configure_logging(get_settings())

    result: int = args.func(args)
    return result


if __name__ == "__main__":
    sys.exit(main())
