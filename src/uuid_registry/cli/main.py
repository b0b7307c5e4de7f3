"""
UUID Registry CLI

Command-line interface for running backfills and issuing or converting uuids.

Usage:
    uuid-registry init --db emr.db
    uuid-registry backfill --db emr.db
    uuid-registry backfill --db emr.db --table drugs --table-id drug_id
    uuid-registry backfill --db emr.db --table facility_user_ids --vertical uid,facility_id
    uuid-registry create --db emr.db --table patient_data
    uuid-registry status --db emr.db
    uuid-registry to-string 0189c3a1f2b44c1d9a0e5b7c6d8e9f01
    uuid-registry to-bytes 0189c3a1-f2b4-4c1d-9a0e-5b7c6d8e9f01
"""

import json
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from uuid_registry.codec import uuid_to_bytes, uuid_to_string
from uuid_registry.kernel.audit import SQLiteAuditLog
from uuid_registry.kernel.errors import UuidRegistryError
from uuid_registry.kernel.logging import configure_logging
from uuid_registry.kernel.settings import RegistrySettings
from uuid_registry.kernel.storage import SQLiteStorage
from uuid_registry.orchestrator import DEFAULT_BACKFILL_TARGETS
from uuid_registry.registry import UuidRegistry
from uuid_registry.registry_store import RegistryStore

configure_logging(json_output=False, log_level="WARNING")

app = typer.Typer(
    name="uuid-registry",
    help="UUID registry - issue, convert and backfill record uuids",
    add_completion=False,
)

DEFAULT_DB = Path("emr.db")


def open_storage(db_path: Optional[Path] = None) -> SQLiteStorage:
    """Open an existing database or exit with an error"""
    db = db_path or DEFAULT_DB
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        raise typer.Exit(1)
    return SQLiteStorage(db)


def _ensure_registry_tables(storage: SQLiteStorage, settings: RegistrySettings) -> None:
    RegistryStore(storage, settings).ensure_schema()
    SQLiteAuditLog(storage).ensure_schema()


@app.command()
def init(
    db: Annotated[Path, typer.Option(help="Database path")] = DEFAULT_DB,
) -> None:
    """Create the registry and audit tables (safe to run again)"""
    settings = RegistrySettings.from_env()
    with SQLiteStorage(db) as storage:
        _ensure_registry_tables(storage, settings)
    typer.echo(f"✓ Registry tables ready in {db}")


@app.command()
def backfill(
    db: Annotated[Optional[Path], typer.Option("--db", help="Database path")] = None,
    table: Annotated[
        Optional[str],
        typer.Option("--table", help="Backfill only this table"),
    ] = None,
    table_id: Annotated[
        str,
        typer.Option("--table-id", help="Key column of --table"),
    ] = "id",
    vertical: Annotated[
        Optional[str],
        typer.Option("--vertical", help="Comma-separated composite key columns of --table"),
    ] = None,
    no_log: Annotated[
        bool,
        typer.Option("--no-log", help="Do not write the audit entry"),
    ] = False,
    skip_missing_tables: Annotated[
        bool,
        typer.Option("--skip-missing-tables", help="Skip default tables that don't exist"),
    ] = False,
) -> None:
    """Assign uuids to every row that is missing one"""
    settings = RegistrySettings.from_env()
    with open_storage(db) as storage:
        _ensure_registry_tables(storage, settings)
        try:
            if table:
                columns = [c.strip() for c in vertical.split(",") if c.strip()] if vertical else None
                registry = UuidRegistry(
                    storage,
                    settings=settings,
                    table_name=table,
                    table_id=table_id,
                    table_vertical=columns,
                )
                count = registry.create_missing_uuids()
                typer.echo(f"✓ Added {count} uuids to {table}")
                return

            report = UuidRegistry.populate_all_missing_uuids(
                storage,
                audit_log=SQLiteAuditLog(storage),
                log=not no_log,
                settings=settings,
                skip_missing_tables=skip_missing_tables,
            )
        except UuidRegistryError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)

    typer.echo(f"✓ Backfill completed: {report.total} uuids added")
    for table_name, count in report.changed.items():
        typer.echo(f"  {table_name}: {count}")
    for table_name in report.skipped:
        typer.echo(f"  {table_name}: skipped (table not found)")


@app.command()
def create(
    db: Annotated[Optional[Path], typer.Option("--db", help="Database path")] = None,
    table: Annotated[
        Optional[str],
        typer.Option("--table", help="Table the uuid must be unique in"),
    ] = None,
    table_id: Annotated[
        Optional[str],
        typer.Option("--table-id", help="Key column of --table (default: id)"),
    ] = None,
    document_drive: Annotated[
        bool,
        typer.Option("--document-drive", help="Issue a drive document uuid"),
    ] = False,
) -> None:
    """Issue one registered uuid and print it"""
    settings = RegistrySettings.from_env()
    with open_storage(db) as storage:
        _ensure_registry_tables(storage, settings)
        try:
            registry = UuidRegistry(
                storage,
                settings=settings,
                table_name=table or "",
                table_id=table_id,
                document_drive=document_drive,
            )
            uuid = registry.create_uuid()
        except UuidRegistryError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)
    typer.echo(uuid_to_string(uuid))


@app.command()
def status(
    db: Annotated[Optional[Path], typer.Option("--db", help="Database path")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Show how many rows of each tracked table still miss a uuid"""
    settings = RegistrySettings.from_env()
    missing: dict[str, int | None] = {}
    with open_storage(db) as storage:
        _ensure_registry_tables(storage, settings)
        for target in DEFAULT_BACKFILL_TARGETS:
            if not storage.table_exists(target.table_name):
                missing[target.table_name] = None
                continue
            registry = UuidRegistry(storage, target.to_context(), settings=settings)
            missing[target.table_name] = registry.engine.count_missing()
        registered = RegistryStore(storage, settings).count()

    if json_output:
        typer.echo(json.dumps({"registered": registered, "missing": missing}, indent=2))
        return

    typer.echo(f"Registered uuids: {registered}")
    for table_name, count in missing.items():
        label = "table not found" if count is None else f"{count} missing"
        typer.echo(f"  {table_name}: {label}")


@app.command()
def audit(
    db: Annotated[Optional[Path], typer.Option("--db", help="Database path")] = None,
) -> None:
    """List automatic uuid audit entries"""
    settings = RegistrySettings.from_env()
    with open_storage(db) as storage:
        audit_log = SQLiteAuditLog(storage)
        audit_log.ensure_schema()
        events = audit_log.list_events(settings.audit_category)

    if not events:
        typer.echo("No audit entries")
        return
    for event in events:
        typer.echo(f"{event['created']}  {event['summary']}")


@app.command("to-string")
def to_string(
    value: Annotated[str, typer.Argument(help="32 hex digits (binary uuid)")],
) -> None:
    """Convert a hex-encoded binary uuid to its string form"""
    try:
        typer.echo(uuid_to_string(bytes.fromhex(value)))
    except (ValueError, UuidRegistryError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command("to-bytes")
def to_bytes(
    value: Annotated[str, typer.Argument(help="uuid in 8-4-4-4-12 form")],
) -> None:
    """Convert a string uuid to its binary form (printed as hex)"""
    try:
        typer.echo(uuid_to_bytes(value).hex())
    except UuidRegistryError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def main() -> None:
    """Main entry point"""
    app()


if __name__ == "__main__":
    main()
