"""Command Line Interface for dbcrud."""

import csv
import io
import json
import logging
import sys
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from tabulate import tabulate

from ..config.settings import get_settings
from ..database.connection import get_db_connection
from ..database.crud import DbCrud
from ..database.exceptions import CoercionErrors, DbCrudError
from ..database.models import ColumnOrder, DbTable, QueryData
from ..database.predicates import coerce_values, parse_predicate

# Initialize CLI app
app = typer.Typer(
    name="dbcrud",
    help="Browse and edit any table of a relational database.",
    add_completion=False
)

# Rich console for beautiful output
console = Console()

# Global variables
crud: Optional[DbCrud] = None
db_connection = None
settings = None


def setup_logging(debug: bool = False, log_level: str = "INFO") -> None:
    """Set up logging configuration."""
    level = logging.DEBUG if debug else getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler('dbcrud.log'),
            logging.StreamHandler(sys.stdout) if debug else logging.NullHandler()
        ]
    )


def initialize_components(debug: bool = False) -> bool:
    """Initialize logging, database connection and CRUD engine."""
    global crud, db_connection, settings

    try:
        settings = get_settings()
        setup_logging(debug or settings.debug, settings.log_level)
        db_connection = get_db_connection()

        if not db_connection.test_connection():
            console.print("[red]Failed to connect to database. Please check your configuration.[/red]")
            return False

        crud = DbCrud(db_connection, schema=settings.db_schema)
        return True

    except Exception as e:
        console.print(f"[red]Initialization failed: {e}[/red]")
        return False


def parse_assignments(items: List[str]) -> Dict[str, str]:
    """Split ``column=value`` arguments into a dict, keeping their order."""
    values: Dict[str, str] = {}
    for item in items:
        column, sep, value = item.partition("=")
        if not sep or not column.strip():
            raise typer.BadParameter(f"expected column=value, got '{item}'")
        values[column.strip()] = value
    return values


def report_coercion_errors(errors: CoercionErrors) -> None:
    """Print every coercion failure and exit with status 1."""
    console.print(f"[red]failed coercing parameters to sql types: {errors}[/red]")
    raise typer.Exit(1)


def coerce_row_values(table: DbTable, raw: Dict[str, str]) -> Dict[str, Any]:
    """Coerce every value to its column type, reporting all failures at once."""
    unknown = [column for column in raw if not table.has_column(column)]
    if unknown:
        console.print(f"[red]unknown columns for {table.name}: {', '.join(unknown)}[/red]")
        raise typer.Exit(1)
    try:
        return dict(coerce_values(table, raw))
    except CoercionErrors as e:
        report_coercion_errors(e)


def resolve_table(name: str) -> DbTable:
    """Map an alias to its table and make sure the table exists."""
    table_name = settings.resolve_table(name)
    table = crud.table_def(table_name)
    if table is None:
        console.print(f"[red]resource '{name}' not found[/red]")
        raise typer.Exit(1)
    return table


def parse_id(table: DbTable, text: str) -> Any:
    """Parse a scalar key, or ``col=value,col=value`` for composite keys.

    Composite parts are read as CSV, so a value holding a comma is written
    quoted: ``account_id=1,"role=a,b"``.
    """
    if "=" in text:
        parts = next(csv.reader([text], skipinitialspace=True))
        return coerce_row_values(table, parse_assignments(parts))
    if len(table.primary_key) != 1:
        console.print(f"[red]Table {table.name} needs a column=value id; "
                      f"primary key is {list(table.primary_key)}[/red]")
        raise typer.Exit(1)
    return coerce_row_values(table, {table.primary_key[0]: text})[table.primary_key[0]]


def display_query_data(data: QueryData, output_format: str = "table") -> None:
    """Display query results in the specified format."""
    if data.row_count == 0:
        console.print("[yellow]No results found.[/yellow]")
        return

    if output_format.lower() == "json":
        console.print(json.dumps(data.as_maps(), indent=2, default=str))

    elif output_format.lower() == "csv":
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(data.columns)
        writer.writerows(data.rows)
        console.print(output.getvalue())

    elif output_format.lower() == "plain":
        console.print(tabulate(data.rows, headers=data.columns))

    else:  # table format (default)
        table = Table(show_header=True, header_style="bold magenta")

        for column in data.columns:
            table.add_column(column)

        for row in data.rows:
            str_row = [str(val) if val is not None else "" for val in row]
            table.add_row(*str_row)

        console.print(table)

    console.print(f"[dim]Executed in {data.execution_time:.3f} seconds[/dim]")


def _startup(debug: bool = False) -> None:
    if not initialize_components(debug):
        raise typer.Exit(1)


@app.command()
def tables() -> None:
    """List all tables in the catalog."""
    _startup()

    table = Table(title="Database Tables", show_header=True)
    table.add_column("Table Name", style="cyan")
    table.add_column("Alias", style="green")

    for name in crud.table_names():
        alias = settings.alias_for(name)
        table.add_row(name, alias if alias != name else "")

    console.print(table)


@app.command()
def describe(name: str = typer.Argument(..., help="Table name or alias")) -> None:
    """Show the columns and primary key of a table."""
    _startup()
    table_def = resolve_table(name)

    table_info = Table(title=f"Table: {table_def.name}", show_header=True)
    table_info.add_column("Column", style="cyan")
    table_info.add_column("Type", style="magenta")
    table_info.add_column("Size")
    table_info.add_column("Nullable", style="yellow")
    table_info.add_column("Key", style="green")

    for column in table_def.columns:
        key = ""
        if column.name in table_def.primary_key:
            key = f"PK{table_def.primary_key.index(column.name) + 1}"
        table_info.add_row(
            column.name,
            column.sql_type.name,
            str(column.size) if column.size else "",
            "Yes" if column.nullable else "No",
            key
        )

    console.print(table_info)


@app.command()
def select(
    name: str = typer.Argument(..., help="Table name or alias"),
    where: List[str] = typer.Option([], "--where", "-w", help="Equality filter column=value"),
    offset: int = typer.Option(0, "--offset", "-o", help="Rows to skip"),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Maximum rows (0 for all)"),
    order_by: List[str] = typer.Option([], "--order-by", help="Sort column, e.g. id or id:desc"),
    output_format: Optional[str] = typer.Option(None, "--format", "-f", help="Output format: table, json, csv, plain"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging")
) -> None:
    """Query rows of a table."""
    _startup(debug)
    table_def = resolve_table(name)

    try:
        predicate = parse_predicate(table_def, parse_assignments(where))
        ordering = [ColumnOrder.parse(o) for o in order_by]
    except CoercionErrors as e:
        report_coercion_errors(e)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    count = settings.default_page_size if limit is None else limit
    try:
        data = crud.select(table_def.name, predicate, offset=offset, count=count, order_by=ordering)
    except DbCrudError as e:
        console.print(f"[red]Query failed: {e}[/red]")
        raise typer.Exit(1)

    display_query_data(data, output_format or settings.default_output_format)


@app.command()
def get(
    name: str = typer.Argument(..., help="Table name or alias"),
    id: str = typer.Argument(..., help="Primary key value, or col=value,col=value")
) -> None:
    """Show a single row by primary key."""
    _startup()
    table_def = resolve_table(name)

    try:
        row = crud.select_by_id(table_def.name, parse_id(table_def, id))
    except (DbCrudError, ValueError) as e:
        console.print(f"[red]Query failed: {e}[/red]")
        raise typer.Exit(1)

    if row is None:
        console.print(f"[yellow]No row with id {id} in {table_def.name}.[/yellow]")
        raise typer.Exit(1)

    body = "\n".join(f"[cyan]{column}[/cyan]: {value}" for column, value in row.items())
    console.print(Panel(body, title=f"{table_def.name} {id}", border_style="blue"))


@app.command()
def insert(
    name: str = typer.Argument(..., help="Table name or alias"),
    values: List[str] = typer.Argument(..., help="Column values as column=value")
) -> None:
    """Insert a row."""
    _startup()
    table_def = resolve_table(name)
    coerced = coerce_row_values(table_def, parse_assignments(values))

    try:
        count = crud.insert(table_def.name, coerced)
    except DbCrudError as e:
        console.print(f"[red]✗ Insert failed: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓ Inserted {count} row(s) into {table_def.name}[/green]")


@app.command()
def update(
    name: str = typer.Argument(..., help="Table name or alias"),
    id: str = typer.Argument(..., help="Primary key value, or col=value,col=value"),
    values: List[str] = typer.Argument(..., help="New column values as column=value")
) -> None:
    """Update the row with the given primary key."""
    _startup()
    table_def = resolve_table(name)
    key = parse_id(table_def, id)
    coerced = coerce_row_values(table_def, parse_assignments(values))

    try:
        count = crud.update(table_def.name, key, coerced)
    except (DbCrudError, ValueError) as e:
        console.print(f"[red]✗ Update failed: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓ Updated {count} row(s) in {table_def.name}[/green]")


@app.command()
def delete(
    name: str = typer.Argument(..., help="Table name or alias"),
    id: str = typer.Argument(..., help="Primary key value, or col=value,col=value"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation")
) -> None:
    """Delete the row with the given primary key."""
    _startup()
    table_def = resolve_table(name)
    key = parse_id(table_def, id)

    if not yes and not typer.confirm(f"Delete {id} from {table_def.name}?", default=False):
        console.print("[yellow]Delete cancelled.[/yellow]")
        return

    try:
        count = crud.delete(table_def.name, key)
    except (DbCrudError, ValueError) as e:
        console.print(f"[red]✗ Delete failed: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓ Deleted {count} row(s) from {table_def.name}[/green]")


@app.command()
def test_connection() -> None:
    """Test database connection."""
    console.print("Testing database connection...")

    if initialize_components():
        console.print("[green]✓ Database connection successful![/green]")
        console.print(f"Dialect: {crud.dialect.name}")

        table_names = crud.table_names()
        console.print(f"Found {len(table_names)} tables: {', '.join(table_names)}")
    else:
        console.print("[red]✗ Database connection failed![/red]")
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    from .. import __version__
    console.print(f"dbcrud v{__version__}")


if __name__ == "__main__":
    app()
