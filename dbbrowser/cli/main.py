"""Command Line Interface for dbbrowser."""

import asyncio
import csv
import io
import json
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional, Sequence

import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table
from rich.text import Text
from tabulate import tabulate

from ..browser.forms import EditForm
from ..browser.notifications import Notification
from ..browser.session import BrowserSession, create_session
from ..config.settings import Settings, get_settings
from ..database.errors import BrowserConnectionError, BrowserError
from ..database.models import Row, TableSchema, format_value

# Initialize CLI app
app = typer.Typer(
    name="dbbrowser",
    help="Browse and edit the tables of any MySQL database.",
    add_completion=False
)

# Rich console for beautiful output
console = Console()


def setup_logging(debug: bool = False, log_level: str = "INFO") -> None:
    """Set up logging configuration; ``--debug`` wins over the configured level."""
    level = logging.DEBUG if debug else getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler('dbbrowser.log'),
            logging.StreamHandler(sys.stdout) if debug else logging.NullHandler()
        ]
    )


def build_settings(
    host: Optional[str] = None,
    port: Optional[int] = None,
    user: Optional[str] = None,
    password: Optional[str] = None,
    database: Optional[str] = None,
) -> Settings:
    """Apply command-line overrides on top of the configured settings."""
    overrides = {
        "db_host": host,
        "db_port": port,
        "db_user": user,
        "db_password": password,
        "db_name": database,
    }
    return get_settings().model_copy(update={k: v for k, v in overrides.items() if v is not None})


def print_notification(notification: Optional[Notification]) -> None:
    """Echo notifications as they are pushed."""
    if notification is None:
        return
    if notification.is_error:
        console.print(f"[red]✗ {notification.message}[/red]")
    else:
        console.print(f"[green]✓ {notification.message}[/green]")


@asynccontextmanager
async def open_session(settings: Settings):
    """Connect, wait for the initial load and always tear down afterwards."""
    session = create_session(settings)
    session.notifications.add_listener(print_notification)
    try:
        status = await session.connect(settings.connection_params)
        if not status.is_ready:
            raise BrowserConnectionError(status.reason or "connection failed", session.lifecycle.last_error)
        yield session
    finally:
        await session.disconnect()
        session.close()


def run_with_session(settings: Settings, action) -> None:
    """Run ``action(session)`` on a fresh event loop, mapping errors to exit codes."""
    async def runner():
        async with open_session(settings) as session:
            await action(session)

    try:
        asyncio.run(runner())
    except BrowserConnectionError as e:
        detail = f" ({e.last_error})" if e.last_error else ""
        console.print(f"[red]Failed to connect to database: {e.reason}{detail}[/red]")
        raise typer.Exit(1)
    except BrowserError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def render_cell(value) -> Text:
    """NULL is shown dimmed so it never looks like an empty string."""
    if value is None:
        return Text("NULL", style="dim italic")
    return Text(str(value))


def display_rows(
    rows: Sequence[Row],
    columns: Sequence[str],
    output_format: str = "table",
    max_rows: int = 50,
    title: Optional[str] = None,
    selected: Optional[Row] = None,
) -> None:
    """Display rows in the specified format."""
    if not rows:
        console.print("[yellow]No records found.[/yellow]")
        return

    output_format = output_format.lower()
    if output_format == "json":
        data = [{column: row.get(column) for column in columns} for row in rows]
        console.print(json.dumps(data, indent=2, default=str))

    elif output_format == "csv":
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(columns)
        writer.writerows([[format_value(row.get(column)) for column in columns] for row in rows])
        console.print(output.getvalue())

    elif output_format == "plain":
        data = [[format_value(row.get(column)) for column in columns] for row in rows[:max_rows]]
        console.print(tabulate(data, headers=list(columns), tablefmt="simple"))

    else:  # table format (default)
        table = Table(title=title, show_header=True, header_style="bold magenta")
        table.add_column("", width=1)
        for column in columns:
            table.add_column(column)

        for row in rows[:max_rows]:
            marker = "▶" if selected is not None and row is selected else ""
            table.add_row(marker, *[render_cell(row.get(column)) for column in columns])

        console.print(table)

    if output_format in ("table", "plain") and len(rows) > max_rows:
        console.print(f"[yellow]Showing first {max_rows} of {len(rows)} records[/yellow]")


def display_schema(schema: TableSchema) -> None:
    """Show columns, keys and display columns of a table."""
    table_info = Table(title=f"Table: {schema.table_name}", show_header=True)
    table_info.add_column("Column", style="cyan")
    table_info.add_column("Key", style="green")
    table_info.add_column("References", style="magenta")
    table_info.add_column("Shown As", style="yellow")

    for column in schema.columns:
        fk = schema.foreign_keys.get(column)
        table_info.add_row(
            column,
            "PK" if column == schema.primary_key else ("FK" if fk else ""),
            f"{fk.referenced_table}.{fk.referenced_column} ({fk.descriptive_column})" if fk else "",
            fk.join_alias if fk else column,
        )

    console.print(table_info)
    console.print(f"[dim]Display columns: {', '.join(schema.display_columns)}[/dim]")


def display_tables(tables: Sequence[str], active: Optional[str] = None) -> None:
    table = Table(title="Database Tables", show_header=True)
    table.add_column("Table Name", style="cyan")
    for name in tables:
        table.add_row(f"[bold]{name}[/bold] ◀" if name == active else name)
    console.print(table)


@app.callback()
def main(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, "--host", "-H", help="Database host"),
    port: Optional[int] = typer.Option(None, "--port", "-P", help="Database port"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Database user"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Database password"),
    database: Optional[str] = typer.Option(None, "--database", "-D", help="Database name"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging")
) -> None:
    """Browse and edit the tables of any MySQL database."""
    settings = build_settings(host, port, user, password, database)
    setup_logging(debug or settings.debug, settings.log_level)
    ctx.obj = settings


@app.command()
def test_connection(ctx: typer.Context) -> None:
    """Test database connection."""
    settings: Settings = ctx.obj
    console.print("Testing database connection...")

    async def action(session: BrowserSession):
        tables = session.catalog.tables
        console.print("[green]✓ Database connection successful![/green]")
        console.print(f"Found {len(tables)} tables: {', '.join(tables)}")

    run_with_session(settings, action)


@app.command()
def tables(ctx: typer.Context) -> None:
    """List all tables."""
    async def action(session: BrowserSession):
        display_tables(session.catalog.tables)

    run_with_session(ctx.obj, action)


@app.command()
def schema(
    ctx: typer.Context,
    table: str = typer.Argument(..., help="Table to describe"),
) -> None:
    """Show the columns and foreign keys of a table."""
    async def action(session: BrowserSession):
        if await session.select_table(table):
            display_schema(session.schema)
        else:
            raise typer.Exit(1)

    run_with_session(ctx.obj, action)


@app.command()
def show(
    ctx: typer.Context,
    table: str = typer.Argument(..., help="Table to display"),
    output_format: Optional[str] = typer.Option(None, "--format", "-f", help="Output format: table, json, csv, plain"),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Maximum rows to display"),
) -> None:
    """Display the records of a table."""
    settings: Settings = ctx.obj

    async def action(session: BrowserSession):
        if not await session.select_table(table):
            raise typer.Exit(1)
        display_rows(
            session.rows,
            session.display_columns,
            output_format or settings.default_output_format,
            limit or settings.max_display_rows,
            title=f"Table: {table}",
        )

    run_with_session(settings, action)


def show_help() -> None:
    """Show help information."""
    help_text = """
[bold]Available Commands:[/bold]
  /tables         - List all tables
  /use TABLE      - Open a table
  /schema         - Show the open table's schema
  /show           - Show the open table's records
  /select KEY     - Select a record by primary key
  /add            - Add a record
  /edit           - Edit the selected record
  /delete         - Delete the selected record
  /refresh        - Reload the open table
  /count          - Count records on the server
  /help           - Show this help message
  /quit           - Exit interactive mode

Leave a field empty to store NULL.
    """
    console.print(Panel(help_text, title="Help", border_style="green"))


async def ask(prompt: str, default: str = "") -> str:
    """Prompt without blocking the event loop's timers."""
    return await asyncio.to_thread(Prompt.ask, prompt, default=default)


async def confirm(prompt: str, default: bool = False) -> bool:
    return await asyncio.to_thread(Confirm.ask, prompt, default=default)


async def fill_form(form: EditForm) -> None:
    """Prompt for each editable column, keeping current values as defaults."""
    for column in form.columns:
        current = form.values.get(column)
        default = "" if current is None else str(current)
        options = form.options.get(column)
        if options:
            choices = ", ".join(f"{option.id}={option.display}" for option in options[:20])
            console.print(f"[dim]{column} choices: {choices}[/dim]")
        while True:
            answer = await ask(f"[cyan]{column}[/cyan]", default=default)
            if options and answer != "":
                try:
                    form.choose_option(column, answer)
                except BrowserError as e:
                    console.print(f"[red]{e}[/red]")
                    continue
            else:
                form.set_value(column, answer)
            break


async def run_form(form: EditForm) -> bool:
    """Fill and submit a form; on failure offer to retry with the same input."""
    while form.is_open:
        await fill_form(form)
        if await form.submit():
            return True
        if not await confirm("Edit and retry?", default=True):
            form.close()
    return False


async def interactive_loop(session: BrowserSession, settings: Settings) -> None:
    """Read and dispatch commands until the user quits."""
    while True:
        active = session.catalog.active_table or "-"
        line = (await ask(f"\n[bold cyan]dbbrowser:{active}>[/bold cyan]")).strip()
        if not line:
            continue
        command, _, argument = line.partition(" ")
        argument = argument.strip()

        try:
            if command in ("/quit", "/exit"):
                console.print("[yellow]Goodbye![/yellow]")
                return
            elif command == "/help":
                show_help()
            elif command == "/tables":
                display_tables(await session.load_tables(), session.catalog.active_table)
            elif command == "/use":
                if not argument:
                    console.print("[red]Usage: /use TABLE[/red]")
                elif await session.select_table(argument):
                    console.print(f"[green]Opened {argument} ({len(session.rows)} records)[/green]")
            elif command == "/schema":
                if session.schema is not None:
                    display_schema(session.schema)
            elif command == "/show":
                display_rows(
                    session.rows,
                    session.display_columns,
                    max_rows=settings.max_display_rows,
                    title=f"Table: {active}",
                    selected=session.records.selection,
                )
            elif command == "/select":
                if session.records.select_key(argument) is None:
                    console.print(f"[yellow]No record with key {argument}[/yellow]")
                else:
                    console.print(f"[green]Selected record {argument}[/green]")
            elif command == "/add":
                await run_form(await session.open_add_form())
            elif command == "/edit":
                await run_form(await session.open_edit_form())
            elif command == "/delete":
                selection = session.records.selection
                key = session.records.primary_key_value(selection) if selection else None
                if selection is None or await confirm(f"Delete record {key}?", default=False):
                    await session.delete_selected()
            elif command == "/refresh":
                await session.refresh()
            elif command == "/count":
                count = await session.count_records()
                if count is not None:
                    console.print(f"{active}: {count} records")
            else:
                console.print("[red]Unknown command. Type /help for available commands.[/red]")
        except BrowserError as e:
            console.print(f"[red]Error: {e}[/red]")

        if not session.status.is_ready:
            console.print(f"[red]Connection is {session.status}; reconnect to continue.[/red]")
            return


@app.command()
def interactive(ctx: typer.Context) -> None:
    """Start interactive mode for browsing and editing tables."""
    settings: Settings = ctx.obj

    async def action(session: BrowserSession):
        console.print(Panel.fit(
            "[bold blue]dbbrowser Interactive Mode[/bold blue]\n"
            f"Connected to {settings.db_name} with {len(session.catalog.tables)} tables.\n"
            "Commands: /help, /tables, /use, /show, /select, /add, /edit, /delete, /quit",
            border_style="blue"
        ))
        try:
            await interactive_loop(session, settings)
        except (KeyboardInterrupt, EOFError):
            console.print("\n[yellow]Goodbye![/yellow]")

    run_with_session(settings, action)


if __name__ == "__main__":
    app()
