"""
Alembic environment running migrations over asyncpg.

The URL is taken from application settings, never from alembic.ini, and the
metadata comes from ``backoffice.database.models`` so autogenerate sees every
table.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from backoffice.core.config import get_settings
from backoffice.core.logging import get_logger
from backoffice.database.connection import async_database_url
from backoffice.database.models import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = get_logger(__name__)
target_metadata = Base.metadata
config.set_main_option("sqlalchemy.url", async_database_url(get_settings().database_url))

COMPARE_OPTIONS = {"compare_type": True, "compare_server_default": True}


def run_migrations_offline() -> None:
    """Write the migration SQL instead of executing it."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMPARE_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def _migrate(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        transaction_per_migration=True,
        **COMPARE_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate)
    except Exception as e:
        logger.error("Migration failed", error=str(e), error_type=type(e).__name__)
        raise
    finally:
        await engine.dispose()
    logger.info("Migrations applied", revision_head=context.get_head_revision())


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
