"""
Administrative client for the PostgreSQL cluster that hosts managed databases.

Every call opens its own connection through a NullPool engine in
AUTOCOMMIT mode — CREATE/DROP DATABASE refuse to run inside a
transaction block, and the orchestrator makes only a handful of calls
per request.

Quoting:
  • Identifiers go through SQLAlchemy's PostgreSQL identifier preparer
    (always quoted, embedded quotes doubled).
  • The only literal we ever inline is the role password; it is wrapped
    in single quotes with embedded quotes doubled.
  • Statements are sent with exec_driver_sql so nothing in them is
    mistaken for a bind parameter.

Error mapping:
  connect failure              → EngineUnavailable
  CREATE DATABASE on 42P04     → LiveDatabaseExists, nothing touched
  CREATE ROLE on 42710         → not an error; ALTER ROLE ... PASSWORD runs
                                 once CREATE DATABASE has succeeded
  anything else                → EngineError, after dropping whatever this
                                 call created
"""

from __future__ import annotations

import abc
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.dialects import postgresql
from sqlalchemy.engine import URL
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from pgmanager.errors import EngineError, EngineUnavailable, LiveDatabaseExists

logger = logging.getLogger(__name__)

DUPLICATE_DATABASE = "42P04"
DUPLICATE_OBJECT = "42710"

_preparer = postgresql.dialect().identifier_preparer


# ── Statement builders (pure) ───────────────────────────────
def quote_ident(name: str) -> str:
    return _preparer.quote_identifier(name)


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def create_role_sql(user: str, password: str) -> str:
    return f"CREATE ROLE {quote_ident(user)} WITH LOGIN PASSWORD {quote_literal(password)}"


def alter_role_password_sql(user: str, password: str) -> str:
    return f"ALTER ROLE {quote_ident(user)} WITH LOGIN PASSWORD {quote_literal(password)}"


def create_database_sql(name: str, owner: str) -> str:
    return f"CREATE DATABASE {quote_ident(name)} OWNER {quote_ident(owner)}"


def grant_all_sql(name: str, user: str) -> str:
    return f"GRANT ALL PRIVILEGES ON DATABASE {quote_ident(name)} TO {quote_ident(user)}"


def drop_database_sql(name: str) -> str:
    return f"DROP DATABASE IF EXISTS {quote_ident(name)}"


def drop_role_sql(user: str) -> str:
    return f"DROP ROLE IF EXISTS {quote_ident(user)}"


_TERMINATE_BACKENDS = text(
    "SELECT pg_terminate_backend(pid) FROM pg_stat_activity "
    "WHERE datname = :name AND pid <> pg_backend_pid()"
)
_DATABASE_EXISTS = text(
    "SELECT EXISTS (SELECT 1 FROM pg_database WHERE datname = :name)"
)
_LIST_DATABASES = text(
    "SELECT datname FROM pg_database WHERE datistemplate = false ORDER BY datname"
)


def sqlstate(exc: BaseException) -> str | None:
    """SQLSTATE of a driver error wrapped by SQLAlchemy, if it has one."""
    orig = getattr(exc, "orig", None)
    for attr in ("sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if code:
            return code
    return None


# ── Contract ────────────────────────────────────────────────
class EngineClient(abc.ABC):
    """Operations the orchestrator needs from the live cluster."""

    @abc.abstractmethod
    async def create_database(self, name: str, user: str, password: str) -> None:
        """Create login role + owned database. LiveDatabaseExists if taken."""

    @abc.abstractmethod
    async def drop_database(self, name: str, user: str) -> None:
        """Drop database and role. Succeeds when either is already gone."""

    @abc.abstractmethod
    async def database_exists(self, name: str) -> bool: ...

    @abc.abstractmethod
    async def list_databases(self) -> list[str]:
        """Non-template database names, sorted."""

    @abc.abstractmethod
    async def ping(self) -> None:
        """Raise EngineUnavailable unless the cluster answers."""

    async def close(self) -> None:
        """Release resources. Default: nothing to release."""


# ── PostgreSQL implementation ───────────────────────────────
class PostgresAdminClient(EngineClient):
    def __init__(self, url: str | URL, *, connect_timeout: float = 10.0) -> None:
        self._engine: AsyncEngine = create_async_engine(
            url,
            poolclass=NullPool,
            isolation_level="AUTOCOMMIT",
            connect_args={"timeout": connect_timeout},
        )

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[AsyncConnection]:
        try:
            conn = await self._engine.connect()
        except (SQLAlchemyError, OSError, TimeoutError) as exc:
            logger.error("Cannot connect to PostgreSQL: %s", exc)
            raise EngineUnavailable("database server is unavailable") from exc
        try:
            yield conn
        finally:
            await conn.close()

    async def create_database(self, name: str, user: str, password: str) -> None:
        async with self._connect() as conn:
            role_created = True
            try:
                await conn.exec_driver_sql(create_role_sql(user, password))
            except DBAPIError as exc:
                if not _is_duplicate_role(exc):
                    raise EngineError(f"failed to create role {user}: {exc.orig}") from exc
                # Its password is reset only once the database below is ours.
                logger.info("Role %s already exists", user)
                role_created = False

            try:
                await conn.exec_driver_sql(create_database_sql(name, user))
            except DBAPIError as exc:
                if sqlstate(exc) == DUPLICATE_DATABASE:
                    raise LiveDatabaseExists(f"database {name} already exists") from exc
                await self._undo_create(conn, name, user, database=False, role=role_created)
                raise EngineError(f"failed to create database {name}: {exc.orig}") from exc

            try:
                if not role_created:
                    await conn.exec_driver_sql(alter_role_password_sql(user, password))
                await conn.exec_driver_sql(grant_all_sql(name, user))
            except DBAPIError as exc:
                await self._undo_create(conn, name, user, database=True, role=role_created)
                raise EngineError(f"failed to set up database {name}: {exc.orig}") from exc

        logger.info("Created database %s owned by %s", name, user)

    async def _undo_create(
        self, conn: AsyncConnection, name: str, user: str, *, database: bool, role: bool
    ) -> None:
        """Best-effort removal of what a failed create_database made."""
        statements = []
        if database:
            statements.append(drop_database_sql(name))
        if role:
            statements.append(drop_role_sql(user))
        for statement in statements:
            try:
                await conn.exec_driver_sql(statement)
            except DBAPIError as exc:
                logger.warning("Could not undo partial create (%s): %s", statement, exc.orig)

    async def drop_database(self, name: str, user: str) -> None:
        async with self._connect() as conn:
            try:
                await conn.execute(_TERMINATE_BACKENDS, {"name": name})
            except DBAPIError as exc:
                logger.debug("Could not terminate sessions on %s: %s", name, exc.orig)

            try:
                await conn.exec_driver_sql(drop_database_sql(name))
            except DBAPIError as exc:
                raise EngineError(f"failed to drop database {name}: {exc.orig}") from exc

            try:
                await conn.exec_driver_sql(drop_role_sql(user))
            except DBAPIError as exc:
                raise EngineError(f"failed to drop role {user}: {exc.orig}") from exc

        logger.info("Dropped database %s and role %s", name, user)

    async def database_exists(self, name: str) -> bool:
        async with self._connect() as conn:
            try:
                result = await conn.execute(_DATABASE_EXISTS, {"name": name})
            except DBAPIError as exc:
                raise EngineError(f"failed to check database {name}: {exc.orig}") from exc
            return bool(result.scalar())

    async def list_databases(self) -> list[str]:
        async with self._connect() as conn:
            try:
                result = await conn.execute(_LIST_DATABASES)
            except DBAPIError as exc:
                raise EngineError(f"failed to list databases: {exc.orig}") from exc
            return list(result.scalars().all())

    async def ping(self) -> None:
        async with self._connect() as conn:
            try:
                await conn.execute(text("SELECT 1"))
            except DBAPIError as exc:
                raise EngineUnavailable("database server is not answering") from exc

    async def close(self) -> None:
        await self._engine.dispose()


def _is_duplicate_role(exc: DBAPIError) -> bool:
    if sqlstate(exc) == DUPLICATE_OBJECT:
        return True
    return "already exists" in str(exc.orig)
