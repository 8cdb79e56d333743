"""
Alembic migration environment. Reads the database location from Herald
config.

Uses a SYNC engine for migrations (sqlite) even though the app uses
async (aiosqlite) at runtime.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from herald.config import load_config
from herald.db.models import Base

# Alembic Config object
config = context.config


def _sync_url() -> str:
    herald_config = load_config()
    url = herald_config.database.url
    if not url:
        path = herald_config.database.path
        path.parent.mkdir(parents=True, exist_ok=True)
        url = f"sqlite:///{path}"
    return url.replace("+aiosqlite", "").replace("+asyncpg", "+psycopg2")


sync_url = config.get_main_option("sqlalchemy.url") or _sync_url()
config.set_main_option("sqlalchemy.url", sync_url)

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode with sync engine."""
    connectable = create_engine(
        sync_url,
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()
    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
