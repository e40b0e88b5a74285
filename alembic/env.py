"""Alembic env.py: async migrations for the triage API tables.

The database URL comes from settings (DATABASE_URL / .env) unless one is
passed on the command line, e.g. ``alembic -x db_url=postgresql+asyncpg://... upgrade head``.
"""

import asyncio
import os
import sys

# 'triage_api' must be importable when alembic runs from another directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from alembic import context

from triage_api.core.config import settings
from triage_api.core.database import Base
from triage_api.models.appointment import Appointment  # noqa: F401
from triage_api.models.call_analysis import CallAnalysis  # noqa: F401
from triage_api.models.profile import Profile  # noqa: F401

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def database_url() -> str:
    return context.get_x_argument(as_dictionary=True).get("db_url") or settings.DATABASE_URL


def configure(**kwargs) -> None:
    # autogenerate diffs column types too
    context.configure(target_metadata=Base.metadata, compare_type=True, **kwargs)


def migrate_offline() -> None:
    """Emit SQL to stdout instead of connecting."""
    configure(url=database_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def _migrate(connection) -> None:
    configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def migrate_online() -> None:
    engine = create_async_engine(database_url(), poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    migrate_offline()
else:
    asyncio.run(migrate_online())
