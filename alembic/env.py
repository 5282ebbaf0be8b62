"""
Alembic environment.

The database URL comes from `config.attributes["database_url"]` when set by
conduit.kernel.migrations.apply(), otherwise from `sqlalchemy.url`, otherwise
from the deployment configuration (conf/ + APP_DB_URL).

Every revision runs in its own transaction, so a failing step leaves the
schema at the last revision that completed.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy.engine import Connection

from conduit.database import create_engine
from conduit.kernel.models import Base
from conduit.logging_config import get_logger

logger = get_logger("conduit.migrations")

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def _database_url() -> str:
    url = config.attributes.get("database_url") or config.get_main_option("sqlalchemy.url")
    if url:
        return url
    from conduit.config import load_for_run_mode

    return load_for_run_mode().database_url


def _log_step(*, ctx, step, heads, run_args) -> None:
    logger.info(
        "Applied migration step",
        extra={
            "direction": "upgrade" if step.is_upgrade else "downgrade",
            "revision": step.up_revision_id if step.is_upgrade else step.down_revision_ids,
            "heads": sorted(heads),
        },
    )


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of running it."""
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        transaction_per_migration=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        transaction_per_migration=True,
        # SQLite connections emit their own BEGIN (see conduit.database),
        # which makes DDL transactional there too
        transactional_ddl=True,
        on_version_apply=_log_step,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    engine = create_engine(_database_url())
    try:
        async with engine.connect() as connection:
            await connection.run_sync(do_run_migrations)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
