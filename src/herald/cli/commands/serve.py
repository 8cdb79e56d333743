"""Server command for running the Herald service."""

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer

logger = logging.getLogger(__name__)


def register(app: typer.Typer) -> None:
    """Register the serve command."""

    @app.command()
    def serve(
        config: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
        host: Annotated[
            str | None,
            typer.Option(
                "--host",
                "-h",
                help="Host to bind to (default: [server] host)",
            ),
        ] = None,
        port: Annotated[
            int | None,
            typer.Option(
                "--port",
                "-p",
                help="Port to bind to (default: [server] port)",
            ),
        ] = None,
        create_schema: Annotated[
            bool,
            typer.Option(
                "--create-schema",
                help="Create missing tables on startup instead of requiring migrations",
            ),
        ] = False,
    ) -> None:
        """Start the Herald scheduler and HTTP API."""
        try:
            asyncio.run(_run_server(config, host, port, create_schema))
        except KeyboardInterrupt:
            # Use print here since logging may not be configured yet
            print("\nServer stopped")


async def _run_server(
    config_path: Path | None = None,
    host: str | None = None,
    port: int | None = None,
    create_schema: bool = False,
) -> None:
    """Run the server asynchronously."""
    from herald.config import load_config
    from herald.config.paths import get_logs_path
    from herald.db import Database
    from herald.logging import configure_logging
    from herald.server import ServerRunner, create_app

    herald_config = load_config(config_path)

    # Configure logging with Rich for colorful server output and file logging
    configure_logging(
        level=herald_config.logging.level,
        use_rich=True,
        log_to_file=herald_config.logging.to_file,
        logs_dir=get_logs_path(),
    )

    database = Database(
        database_url=herald_config.database.url,
        database_path=herald_config.database.path,
    )
    app = create_app(database, herald_config, create_schema=create_schema)

    bind_host = host or herald_config.server.host
    bind_port = port or herald_config.server.port
    logger.info(
        "server_listening",
        extra={
            "server.host": bind_host,
            "server.port": bind_port,
            "scheduler.timezone": herald_config.scheduler.timezone,
        },
    )
    await ServerRunner(app, host=bind_host, port=bind_port).run()
