"""
Migration environment for the pgmanager metadata tables.

Only pgmanager_projects and pgmanager_databases live here; the managed
databases themselves are created on the cluster at runtime and never
migrated.

  • The target URL is Settings.metadata_url (METADATA_URL, falling back to
    the admin server's own database), so alembic.ini holds no credentials.
  • Both asyncpg and aiosqlite URLs work; SQLite gets batch mode so ALTERs
    are emitted as table rebuilds.
  • `pgmanager init-db` creates the same tables without history, for
    throwaway SQLite stores.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection, URL
from sqlalchemy.ext.asyncio import async_engine_from_config

from pgmanager.core.config import get_settings
from pgmanager.core.database import Base

import pgmanager.models.project  # noqa: F401
import pgmanager.models.database  # noqa: F401

config = context.config
target_metadata = Base.metadata


def _metadata_url() -> str:
    url = get_settings().metadata_url
    if isinstance(url, URL):
        url = url.render_as_string(hide_password=False)
    return url


# ConfigParser interpolation: a literal % must be doubled
config.set_main_option("sqlalchemy.url", _metadata_url().replace("%", "%%"))

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _configure(**kwargs) -> None:
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)


# ── Offline: emit SQL only ──────────────────────────────────
def run_migrations_offline() -> None:
    url = config.get_main_option("sqlalchemy.url")
    _configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=url.startswith("sqlite"),
    )
    with context.begin_transaction():
        context.run_migrations()


# ── Online: async engine, sync migration body ───────────────
def _migrate(connection: Connection) -> None:
    _configure(
        connection=connection,
        render_as_batch=connection.dialect.name == "sqlite",
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
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
