"""
SQLAlchemy-backed metadata store.

Works against PostgreSQL (asyncpg) in production and SQLite (aiosqlite)
in tests — only portable constructs are used.

Consistency:
  • The unique constraint on `pgmanager_databases.name` is the guard
    against two concurrent creates for the same target: the loser's
    INSERT fails and is reported as DuplicateRecord.
  • delete_project runs in one transaction: lock the project row, read
    its databases, delete them, delete the project.

Error translation (see _session):
  IntegrityError                        → DuplicateRecord
  OperationalError / InterfaceError /
  OSError (connection-level)            → StoreUnavailable
  any other SQLAlchemyError             → StoreError
"""

from __future__ import annotations

import datetime
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import delete, select
from sqlalchemy.engine import URL
from sqlalchemy.exc import (
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from pgmanager.core.database import Base, build_engine, build_session_factory
from pgmanager.errors import DuplicateRecord, StoreError, StoreUnavailable
from pgmanager.models.database import ManagedDatabase
from pgmanager.models.project import Project
from pgmanager.store.base import DatabaseRecord, MetadataStore, ProjectRecord

logger = logging.getLogger(__name__)


def _project_record(row: Project) -> ProjectRecord:
    return ProjectRecord(id=row.id, name=row.name, created_at=row.created_at)


def _database_record(row: ManagedDatabase) -> DatabaseRecord:
    return DatabaseRecord(
        id=row.id,
        project_id=row.project_id,
        name=row.name,
        user_name=row.user_name,
        password=row.password,
        env=row.env,
        pr_number=row.pr_number,
        created_at=row.created_at,
        expires_at=row.expires_at,
    )


class SqlMetadataStore(MetadataStore):
    """Metadata store on any SQLAlchemy async engine."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._session_factory = build_session_factory(engine)

    @classmethod
    def from_url(cls, url: str | URL, *, echo: bool = False) -> "SqlMetadataStore":
        return cls(build_engine(url, echo=echo))

    async def create_schema(self) -> None:
        """Create missing tables (tests and `pgmanager init-db`; Alembic otherwise)."""
        async with self._translate_errors():
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self._engine.dispose()

    # ── Session / error plumbing ────────────────────────────
    @asynccontextmanager
    async def _translate_errors(self) -> AsyncIterator[None]:
        try:
            yield
        except IntegrityError as exc:
            raise DuplicateRecord(str(exc.orig)) from exc
        except (OperationalError, InterfaceError, OSError) as exc:
            logger.error("Metadata store unreachable: %s", exc)
            raise StoreUnavailable("metadata store is unavailable") from exc
        except SQLAlchemyError as exc:
            logger.exception("Metadata store error")
            raise StoreError(str(exc)) from exc

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with self._translate_errors():
            async with self._session_factory() as session:
                yield session

    # ── Projects ────────────────────────────────────────────
    async def create_project(
        self, name: str, created_at: datetime.datetime
    ) -> ProjectRecord:
        async with self._session() as session:
            project = Project(name=name, created_at=created_at)
            session.add(project)
            await session.commit()
            return _project_record(project)

    async def get_project(self, name: str) -> ProjectRecord | None:
        async with self._session() as session:
            stmt = select(Project).where(Project.name == name)
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _project_record(row) if row is not None else None

    async def list_projects(self) -> list[ProjectRecord]:
        async with self._session() as session:
            stmt = select(Project).order_by(Project.name)
            rows = (await session.execute(stmt)).scalars().all()
            return [_project_record(r) for r in rows]

    async def delete_project(self, name: str) -> list[DatabaseRecord] | None:
        async with self._session() as session:
            stmt = select(Project).where(Project.name == name).with_for_update()
            project = (await session.execute(stmt)).scalar_one_or_none()
            if project is None:
                return None

            stmt = (
                select(ManagedDatabase)
                .where(ManagedDatabase.project_id == project.id)
                .order_by(ManagedDatabase.name)
            )
            removed = [
                _database_record(r)
                for r in (await session.execute(stmt)).scalars().all()
            ]

            # Explicit delete: SQLite only cascades with PRAGMA foreign_keys=ON.
            await session.execute(
                delete(ManagedDatabase).where(ManagedDatabase.project_id == project.id)
            )
            await session.execute(delete(Project).where(Project.id == project.id))
            await session.commit()
            return removed

    # ── Databases ───────────────────────────────────────────
    async def create_database(
        self,
        *,
        project_id: uuid.UUID,
        name: str,
        user_name: str,
        password: str,
        env: str,
        pr_number: int | None,
        created_at: datetime.datetime,
        expires_at: datetime.datetime | None,
    ) -> DatabaseRecord:
        async with self._session() as session:
            if await session.get(Project, project_id) is None:
                raise StoreError(f"unknown project id: {project_id}")
            row = ManagedDatabase(
                project_id=project_id,
                name=name,
                user_name=user_name,
                password=password,
                env=env,
                pr_number=pr_number,
                created_at=created_at,
                expires_at=expires_at,
            )
            session.add(row)
            await session.commit()
            return _database_record(row)

    async def get_database(
        self, project_id: uuid.UUID, env: str, pr_number: int | None
    ) -> DatabaseRecord | None:
        pr_filter = (
            ManagedDatabase.pr_number.is_(None)
            if pr_number is None
            else ManagedDatabase.pr_number == pr_number
        )
        async with self._session() as session:
            stmt = select(ManagedDatabase).where(
                ManagedDatabase.project_id == project_id,
                ManagedDatabase.env == env,
                pr_filter,
            )
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _database_record(row) if row is not None else None

    async def get_database_by_name(self, name: str) -> DatabaseRecord | None:
        async with self._session() as session:
            stmt = select(ManagedDatabase).where(ManagedDatabase.name == name)
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _database_record(row) if row is not None else None

    async def list_databases(self, project_id: uuid.UUID) -> list[DatabaseRecord]:
        async with self._session() as session:
            stmt = (
                select(ManagedDatabase)
                .where(ManagedDatabase.project_id == project_id)
                .order_by(ManagedDatabase.name)
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [_database_record(r) for r in rows]

    async def list_all_databases(self) -> list[DatabaseRecord]:
        async with self._session() as session:
            stmt = select(ManagedDatabase).order_by(ManagedDatabase.name)
            rows = (await session.execute(stmt)).scalars().all()
            return [_database_record(r) for r in rows]

    async def delete_database(self, name: str) -> bool:
        async with self._session() as session:
            result = await session.execute(
                delete(ManagedDatabase).where(ManagedDatabase.name == name)
            )
            await session.commit()
            return result.rowcount > 0

    # ── Cleanup queries ─────────────────────────────────────
    async def list_expired(self, now: datetime.datetime) -> list[DatabaseRecord]:
        async with self._session() as session:
            stmt = (
                select(ManagedDatabase)
                .where(
                    ManagedDatabase.expires_at.is_not(None),
                    ManagedDatabase.expires_at <= now,
                )
                .order_by(ManagedDatabase.expires_at)
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [_database_record(r) for r in rows]

    async def list_older_than(
        self, env: str, cutoff: datetime.datetime
    ) -> list[DatabaseRecord]:
        async with self._session() as session:
            stmt = (
                select(ManagedDatabase)
                .where(
                    ManagedDatabase.env == env,
                    ManagedDatabase.created_at < cutoff,
                )
                .order_by(ManagedDatabase.created_at)
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [_database_record(r) for r in rows]
