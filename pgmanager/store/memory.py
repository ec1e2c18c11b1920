"""
In-memory metadata store.

Used by the test suite and for dry runs. One asyncio.Lock guards both
maps, so every operation — including the uniqueness checks on insert —
is atomic with respect to other coroutines in the same event loop.
"""

from __future__ import annotations

import asyncio
import datetime
import uuid

from pgmanager.errors import DuplicateRecord, StoreError
from pgmanager.store.base import DatabaseRecord, MetadataStore, ProjectRecord


class InMemoryMetadataStore(MetadataStore):
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._projects: dict[uuid.UUID, ProjectRecord] = {}
        self._databases: dict[str, DatabaseRecord] = {}  # keyed by unique name

    # ── Projects ────────────────────────────────────────────
    async def create_project(
        self, name: str, created_at: datetime.datetime
    ) -> ProjectRecord:
        async with self._lock:
            if any(p.name == name for p in self._projects.values()):
                raise DuplicateRecord(f"project already exists: {name}")
            project = ProjectRecord(id=uuid.uuid4(), name=name, created_at=created_at)
            self._projects[project.id] = project
            return project

    async def get_project(self, name: str) -> ProjectRecord | None:
        async with self._lock:
            return self._find_project(name)

    async def list_projects(self) -> list[ProjectRecord]:
        async with self._lock:
            return sorted(self._projects.values(), key=lambda p: p.name)

    async def delete_project(self, name: str) -> list[DatabaseRecord] | None:
        async with self._lock:
            project = self._find_project(name)
            if project is None:
                return None
            removed = sorted(
                (d for d in self._databases.values() if d.project_id == project.id),
                key=lambda d: d.name,
            )
            for record in removed:
                del self._databases[record.name]
            del self._projects[project.id]
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
        async with self._lock:
            if project_id not in self._projects:
                # Mirrors the foreign key on the SQL backend.
                raise StoreError(f"unknown project id: {project_id}")
            if name in self._databases:
                raise DuplicateRecord(f"database already exists: {name}")
            if self._find_database(project_id, env, pr_number) is not None:
                raise DuplicateRecord(
                    f"database already exists for env={env} pr={pr_number}"
                )
            record = DatabaseRecord(
                id=uuid.uuid4(),
                project_id=project_id,
                name=name,
                user_name=user_name,
                password=password,
                env=env,
                pr_number=pr_number,
                created_at=created_at,
                expires_at=expires_at,
            )
            self._databases[name] = record
            return record

    async def get_database(
        self, project_id: uuid.UUID, env: str, pr_number: int | None
    ) -> DatabaseRecord | None:
        async with self._lock:
            return self._find_database(project_id, env, pr_number)

    async def get_database_by_name(self, name: str) -> DatabaseRecord | None:
        async with self._lock:
            return self._databases.get(name)

    async def list_databases(self, project_id: uuid.UUID) -> list[DatabaseRecord]:
        async with self._lock:
            return sorted(
                (d for d in self._databases.values() if d.project_id == project_id),
                key=lambda d: d.name,
            )

    async def list_all_databases(self) -> list[DatabaseRecord]:
        async with self._lock:
            return sorted(self._databases.values(), key=lambda d: d.name)

    async def delete_database(self, name: str) -> bool:
        async with self._lock:
            return self._databases.pop(name, None) is not None

    # ── Cleanup queries ─────────────────────────────────────
    async def list_expired(self, now: datetime.datetime) -> list[DatabaseRecord]:
        async with self._lock:
            expired = [
                d for d in self._databases.values()
                if d.expires_at is not None and d.expires_at <= now
            ]
            return sorted(expired, key=lambda d: d.expires_at)

    async def list_older_than(
        self, env: str, cutoff: datetime.datetime
    ) -> list[DatabaseRecord]:
        async with self._lock:
            old = [
                d for d in self._databases.values()
                if d.env == env and d.created_at < cutoff
            ]
            return sorted(old, key=lambda d: d.created_at)

    # ── Internals (caller holds the lock) ───────────────────
    def _find_project(self, name: str) -> ProjectRecord | None:
        for project in self._projects.values():
            if project.name == name:
                return project
        return None

    def _find_database(
        self, project_id: uuid.UUID, env: str, pr_number: int | None
    ) -> DatabaseRecord | None:
        for record in self._databases.values():
            if (
                record.project_id == project_id
                and record.env == env
                and record.pr_number == pr_number
            ):
                return record
        return None
