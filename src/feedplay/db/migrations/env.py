"""Alembic environment script for feedplay's database migrations.

This script is the entrypoint for all Alembic commands. It is used both by
the ``alembic`` command line (configured through ``alembic.ini`` at the
project root) and programmatically by :func:`feedplay.db.migrate.run_migrations`,
which passes the database URL in through the Alembic config object.

The script uses SQLModel metadata for autogenerate support and accepts
either a synchronous (``sqlite://``) or an asynchronous
(``sqlite+aiosqlite://``) database URL.
"""

import asyncio
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config
from sqlmodel import SQLModel

from alembic import context

# Import all models to register them with SQLModel's metadata.
from feedplay.db import types as db_types

_ = db_types

config = context.config

# Only configure logging from the ini file when running from the command
# line; programmatic runs keep the application's logging setup.
if config.config_file_name is not None and config.attributes.get(
    "configure_logger", True
):
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode, emitting SQL to the script output."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_for_context(connection: Connection) -> None:
    """Configure the migration context and run migrations on ``connection``.

    Args:
        connection: An active SQLAlchemy connection.
    """
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations(connectable_config: dict[str, str]) -> None:
    """Run migrations through an async engine."""
    async_engine = async_engine_from_config(
        connectable_config,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    async with async_engine.connect() as connection:
        await connection.run_sync(run_migrations_for_context)
    await async_engine.dispose()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode.

    Picks a synchronous or asynchronous engine based on the database URL.
    """
    connectable_config = config.get_section(config.config_ini_section) or {}
    url = config.get_main_option("sqlalchemy.url")
    if not url:
        raise ValueError(
            "Database URL is not configured. Set sqlalchemy.url in alembic.ini."
        )
    connectable_config["sqlalchemy.url"] = url

    if "aiosqlite" in url:
        asyncio.run(run_async_migrations(connectable_config))
    else:
        engine = engine_from_config(
            connectable_config, prefix="sqlalchemy.", poolclass=pool.NullPool
        )
        with engine.connect() as connection:
            run_migrations_for_context(connection)
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
