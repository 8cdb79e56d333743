"""Main CLI application."""

import typer

from herald.cli.commands import config, database, serve, tasks

app = typer.Typer(
    name="herald",
    help="Herald - scheduled message dispatcher",
    no_args_is_help=True,
)

serve.register(app)
tasks.register(app)
config.register(app)
database.register(app)


if __name__ == "__main__":
    app()
