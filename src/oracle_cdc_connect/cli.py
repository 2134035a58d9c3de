"""Oracle CDC Connect CLI"""

from __future__ import annotations
import os
import logging
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table as RichTable

from .changelog import ChangeLog
from .client import OracleClient, OracleConfig
from .discovery.base import TableSelector
from .mapping.store import MappingStore
from .models import TableImport
from .producer import enable_change_logging, render_trigger_script
from .sources.oracle import OracleDiscovery

# Set up logging and console
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)
console = Console()

app = typer.Typer(
    help="Oracle CDC Connect CLI - Trigger based change capture for Oracle tables."
)


def env_default(name: str, default: str | None = None) -> str | None:
    """Get environment variable with ORA_ prefix."""
    return os.environ.get(f"ORA_{name}", default)


@app.callback()
def main(
    ctx: typer.Context,
    host: str = typer.Option(
        env_default("HOST", "localhost"), help="Oracle host; env ORA_HOST"
    ),
    port: int = typer.Option(
        int(env_default("PORT", "1521")), help="Oracle listener port; env ORA_PORT"
    ),
    service_name: str = typer.Option(
        env_default("SERVICE_NAME", "FREEPDB1"), help="Oracle service name; env ORA_SERVICE_NAME"
    ),
    user: Optional[str] = typer.Option(
        env_default("USER"), help="Oracle user; env ORA_USER"
    ),
    password: Optional[str] = typer.Option(
        env_default("PASSWORD"), help="Oracle password; env ORA_PASSWORD"
    ),
    dsn: Optional[str] = typer.Option(
        env_default("DSN"), help="Easy Connect string or TNS alias, overrides host/port/service; env ORA_DSN"
    ),
    mapping_directory: str = typer.Option(
        env_default("MAPPING_DIRECTORY", "mappings"), help="Directory of the mapping files; env ORA_MAPPING_DIRECTORY"
    ),
    log_owner: Optional[str] = typer.Option(
        env_default("LOG_OWNER"), help="Owner of the change log table, default the user; env ORA_LOG_OWNER"
    ),
    verbose: bool = typer.Option(False, help="Enable verbose logging"),
):
    """Connection options shared by all commands."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    ctx.obj = {
        "host": host,
        "port": port,
        "service_name": service_name,
        "user": user,
        "password": password,
        "dsn": dsn,
        "mapping_directory": mapping_directory,
        "log_owner": log_owner,
    }


def _client(ctx: typer.Context) -> OracleClient:
    options = ctx.obj
    if not options["user"]:
        console.print("❌ No Oracle user given, use --user or ORA_USER", style="red")
        raise typer.Exit(1)
    return OracleClient(OracleConfig(
        host=options["host"],
        port=options["port"],
        service_name=options["service_name"],
        user=options["user"],
        password=options["password"],
        dsn=options["dsn"],
    ))


def _store(ctx: typer.Context) -> MappingStore:
    return MappingStore(ctx.obj["mapping_directory"])


def _change_log(ctx: typer.Context, client: OracleClient) -> ChangeLog:
    return ChangeLog(ctx.obj["log_owner"] or client.user.upper())


def _mapping_names(store: MappingStore, names: List[str]) -> List[str]:
    return list(names) if names else store.list_names()


@app.command()
def tables(
    ctx: typer.Context,
    schema: Optional[str] = typer.Option(None, help="Only tables of this owner"),
):
    """List the tables change logging can be enabled for."""
    client = _client(ctx)
    try:
        discovery = OracleDiscovery(client)
        imports = discovery.list_table_imports(_store(ctx), schema)
        if not imports:
            console.print("❌ No tables found, is the CREATE TRIGGER privilege granted?")
            return

        rich_table = RichTable(title="Oracle tables")
        rich_table.add_column("Owner", style="cyan")
        rich_table.add_column("Table", style="cyan")
        rich_table.add_column("Mapping", style="green")
        rich_table.add_column("Imported", justify="center")
        for entry in imports:
            rich_table.add_row(
                entry.owner,
                entry.table_name,
                entry.mapping_name,
                "✓" if entry.imported else "",
            )
        console.print(rich_table)
    except Exception as e:
        console.print(f"❌ Error: {e}", style="red")
        raise typer.Exit(1)
    finally:
        client.close()


@app.command("import-tables")
def import_tables(
    ctx: typer.Context,
    schema: Optional[str] = typer.Option(None, help="Only tables of this owner"),
    include_all: bool = typer.Option(False, help="Import all discovered tables"),
    include_tables: List[str] = typer.Option(
        [], help="Tables or patterns to import, OWNER.TABLE (repeatable)"),
    exclude_tables: List[str] = typer.Option(
        [], help="Tables or patterns to exclude (repeatable)"),
    overwrite: bool = typer.Option(False, help="Replace existing mapping files"),
):
    """Create a mapping file with all columns for each selected table."""
    if not include_all and not include_tables:
        console.print("❌ No table selection specified. Use --include-all or --include-tables")
        raise typer.Exit(1)

    client = _client(ctx)
    store = _store(ctx)
    try:
        discovery = OracleDiscovery(client)
        available = discovery.list_tables(schema)
        if include_all:
            selector = TableSelector(include_all=True, exclude_patterns=exclude_tables)
        else:
            selector = TableSelector(include_patterns=include_tables, exclude_patterns=exclude_tables)
        selected = selector.select_tables(available)
        if not selected:
            console.print("❌ No tables selected")
            raise typer.Exit(1)

        entries = []
        for table in selected:
            entry = TableImport(owner=table.schema_name, table_name=table.table_name)
            entry.imported = not overwrite and store.exists(entry.mapping_name)
            entries.append(entry)
        mappings = discovery.import_tables(store, entries)

        console.print(f"✓ Imported {len(mappings)} tables into {store.directory}")
        for mapping in mappings:
            console.print(f"  - {mapping.name} ({mapping.qualified_table_name})")
        skipped = len(entries) - len(mappings)
        if skipped:
            console.print(f"  {skipped} tables skipped, mapping files exist already", style="yellow")
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"❌ Error: {e}", style="red")
        raise typer.Exit(1)
    finally:
        client.close()


@app.command()
def show(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Mapping name"),
):
    """Print one mapping definition as JSON."""
    try:
        mapping = _store(ctx).read(name)
    except Exception as e:
        console.print(f"❌ Error: {e}", style="red")
        raise typer.Exit(1)
    console.print_json(mapping.model_dump_json())


@app.command("trigger-script")
def trigger_script(
    ctx: typer.Context,
    mapping: List[str] = typer.Option([], help="Mapping name (repeatable), default all"),
):
    """Print the DDL of the change log table and all triggers."""
    client = _client(ctx)
    store = _store(ctx)
    try:
        mappings = [store.read(name) for name in _mapping_names(store, mapping)]
        script = render_trigger_script(client, _change_log(ctx, client), mappings)
        typer.echo(script)
    except Exception as e:
        console.print(f"❌ Error: {e}", style="red")
        raise typer.Exit(1)
    finally:
        client.close()


@app.command()
def setup(
    ctx: typer.Context,
    mapping: List[str] = typer.Option([], help="Mapping name (repeatable), default all"),
):
    """Create the change log table and the triggers of the mappings."""
    client = _client(ctx)
    store = _store(ctx)
    try:
        mappings = [store.read(name) for name in _mapping_names(store, mapping)]
        for entry in mappings:
            entry.validate_primary_key()
        created = enable_change_logging(client, _change_log(ctx, client), mappings)
        console.print(f"✅ Change logging enabled for {len(mappings)} mappings")
        for name in created:
            console.print(f"  - created trigger {name}")
    except Exception as e:
        console.print(f"❌ Error: {e}", style="red")
        raise typer.Exit(1)
    finally:
        client.close()


@app.command("current-scn")
def current_scn(ctx: typer.Context):
    """Print the current SCN, usable as first watermark."""
    client = _client(ctx)
    try:
        typer.echo(str(_change_log(ctx, client).current_scn(client)))
    except Exception as e:
        console.print(f"❌ Error: {e}", style="red")
        raise typer.Exit(1)
    finally:
        client.close()


@app.command()
def version():
    """Show version information."""
    from . import __version__
    console.print(f"Oracle CDC Connect v{__version__}")


if __name__ == "__main__":
    app()
