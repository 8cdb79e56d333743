"""Database management commands.

Schema migrations run through Alembic; `alembic.ini` and `migrations/`
live at the project root.
"""

from __future__ import annotations

import subprocess
import sys
from typing import Annotated

import typer

from herald.cli.console import console, error, success


def _alembic(*args: str) -> int:
    result = subprocess.run(
        [sys.executable, "-m", "alembic", *args],
        capture_output=False,
    )
    return result.returncode


def register(app: typer.Typer) -> None:
    """Register the db command group."""
    db_app = typer.Typer(help="Database management commands")

    @db_app.command("migrate")
    def db_migrate(
        revision: Annotated[
            str,
            typer.Option(
                "--revision",
                "-r",
                help="Target revision",
            ),
        ] = "head",
    ) -> None:
        """Run database migrations."""
        console.print(f"[bold]Running migrations to {revision}...[/bold]")
        if _alembic("upgrade", revision) == 0:
            success("Migrations completed successfully")
        else:
            error("Migration failed")
            raise typer.Exit(1)

    @db_app.command("rollback")
    def db_rollback(
        revision: Annotated[
            str,
            typer.Option(
                "--revision",
                "-r",
                help="Target revision",
            ),
        ] = "-1",
    ) -> None:
        """Rollback database migrations."""
        console.print(f"[bold]Rolling back to {revision}...[/bold]")
        if _alembic("downgrade", revision) == 0:
            success("Rollback completed successfully")
        else:
            error("Rollback failed")
            raise typer.Exit(1)

    @db_app.command("status")
    def db_status() -> None:
        """Show migration status."""
        console.print("[bold]Migration status:[/bold]")
        _alembic("current")
        console.print("\n[bold]Pending migrations:[/bold]")
        _alembic("history", "--indicate-current")

    app.add_typer(db_app, name="db")
