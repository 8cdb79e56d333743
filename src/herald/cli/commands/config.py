"""Configuration management commands."""

from pathlib import Path
from typing import Annotated

import click
import typer

from herald.cli.console import console, create_table, error, success


def register(app: typer.Typer) -> None:
    """Register the config command."""

    @app.command()
    def config(
        action: Annotated[
            str | None,
            typer.Argument(help="Action: show, validate"),
        ] = None,
        path: Annotated[
            Path | None,
            typer.Option(
                "--path",
                "-p",
                help="Path to config file (default: $HERALD_HOME/config.toml)",
            ),
        ] = None,
    ) -> None:
        """Manage configuration."""
        if action is None:
            ctx = click.get_current_context()
            click.echo(ctx.get_help())
            raise typer.Exit(0)

        from pydantic import ValidationError
        from rich.syntax import Syntax

        from herald.config import ConfigError, load_config
        from herald.config.paths import get_config_path

        expanded_path = path.expanduser() if path else get_config_path()

        if action == "show":
            if not expanded_path.exists():
                error(f"Config file not found: {expanded_path}")
                console.print("Defaults are used when no config file exists")
                raise typer.Exit(1)

            # Display raw TOML with syntax highlighting
            content = expanded_path.read_text()
            syntax = Syntax(content, "toml", theme="monokai", line_numbers=True)
            console.print(f"[bold]Config file: {expanded_path}[/bold]\n")
            console.print(syntax)

        elif action == "validate":
            if not expanded_path.exists():
                error(f"Config file not found: {expanded_path}")
                raise typer.Exit(1)

            try:
                config_obj = load_config(expanded_path)
            except ValidationError as e:
                error("Configuration validation failed:")
                console.print()
                for err in e.errors():
                    loc = ".".join(str(x) for x in err["loc"])
                    console.print(f"  [yellow]{loc}[/yellow]: {err['msg']}")
                raise typer.Exit(1) from None
            except ConfigError as e:
                error(str(e))
                raise typer.Exit(1) from None

            table = create_table(
                "Configuration Summary",
                [("Setting", "cyan"), ("Value", "green")],
            )
            table.add_row(
                "Database",
                "url (set)" if config_obj.database.url else str(config_obj.database.path),
            )
            table.add_row("Timezone", config_obj.scheduler.timezone)
            table.add_row(
                "Timer resolution", f"{config_obj.scheduler.timer_resolution:g}s"
            )
            lookback = config_obj.scheduler.recovery_lookback_hours
            table.add_row(
                "Recovery lookback",
                "unbounded" if lookback is None else f"{lookback:g}h",
            )
            table.add_row("Delivery", config_obj.delivery.default)
            for recipient_type, deliverer in sorted(config_obj.delivery.routes.items()):
                table.add_row(f"  route '{recipient_type}'", deliverer)
            table.add_row(
                "Webhook",
                config_obj.delivery.webhook_url or "[dim]not configured[/dim]",
            )
            table.add_row(
                "Server", f"{config_obj.server.host}:{config_obj.server.port}"
            )

            success("Configuration is valid!")
            console.print()
            console.print(table)

        else:
            error(f"Unknown action: {action}")
            console.print("Valid actions: show, validate")
            raise typer.Exit(1)
