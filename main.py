import logging
import sqlite3
import subprocess
import sys

import typer
from rich.console import Console

from config import settings
from src.database import create_tables, open_pool

APP_NAME = "Book Shelf API"

console = Console()
app = typer.Typer(help=f"{APP_NAME} command line", add_completion=False)


@app.command("serve")
def cli_serve(
    host: str = typer.Option(None, "--host", help="Bind address (default: API_HOST)"),
    port: int = typer.Option(None, "--port", help="Bind port (default: API_PORT)"),
):
    """Start the HTTP service with uvicorn."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    if not settings.database_url:
        console.print("[bold red]Error:[/] DATABASE_URL is not set.")
        raise typer.Exit(code=1)
    console.print(f"Starting {APP_NAME} on http://{host}:{port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:app",
        "--host", host,
        "--port", str(port),
        "--log-level", settings.log_level.lower(),
    ]
    try:
        result = subprocess.run(args)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] could not launch uvicorn. Make sure it is installed.")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        console.print("[yellow]Stopped.[/]")
        return
    if result.returncode:
        raise typer.Exit(code=result.returncode)


@app.command("init-db")
def cli_init_db(
    database_url: str = typer.Option(None, "--database-url", help="Connection string (default: DATABASE_URL)"),
):
    """Create the books table if it does not exist yet."""
    url = database_url or settings.database_url
    try:
        pool = open_pool(url, size=1, acquire_timeout=settings.database_acquire_timeout)
    except (RuntimeError, ValueError, sqlite3.Error) as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(code=1)
    try:
        create_tables(pool)
    finally:
        pool.close()
    console.print(f"[green]books table ready in[/] {pool.database_file}")


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level)
    app()
