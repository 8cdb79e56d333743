"""CLI command modules."""

from herald.cli.commands import config, database, serve, tasks

__all__ = [
    "config",
    "database",
    "serve",
    "tasks",
]
