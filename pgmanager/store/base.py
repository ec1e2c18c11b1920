"""
Metadata store contract consumed by the provisioning orchestrator.

Two implementations:
  • SqlMetadataStore     — durable, SQLAlchemy async (PostgreSQL or SQLite).
  • InMemoryMetadataStore — single-process, guarded by one asyncio.Lock.

Contract rules shared by both:
  • Lookups return None for "not found" — never raise.
  • Inserts raise DuplicateRecord on any uniqueness violation
    (project name, database name, or project/env/pr triple).
  • delete_database returns False when nothing was deleted, so a
    concurrent cleanup run can tell "already gone" from a failure.
  • Backend connectivity problems raise StoreUnavailable.
"""

from __future__ import annotations

import abc
import datetime
import uuid
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ProjectRecord:
    id: uuid.UUID
    name: str
    created_at: datetime.datetime


@dataclass(frozen=True, slots=True)
class DatabaseRecord:
    """
    Bookkeeping for one provisioned database.

    Attributes:
        pr_number:  Set if and only if env == "pr".
        expires_at: Set for PR databases (created_at + TTL), else None.
    """

    id: uuid.UUID
    project_id: uuid.UUID
    name: str
    user_name: str
    password: str
    env: str
    pr_number: int | None
    created_at: datetime.datetime
    expires_at: datetime.datetime | None


class MetadataStore(abc.ABC):
    """Durable mapping of projects and their database records."""

    # ── Projects ────────────────────────────────────────────
    @abc.abstractmethod
    async def create_project(
        self, name: str, created_at: datetime.datetime
    ) -> ProjectRecord: ...

    @abc.abstractmethod
    async def get_project(self, name: str) -> ProjectRecord | None: ...

    @abc.abstractmethod
    async def list_projects(self) -> list[ProjectRecord]:
        """All projects ordered by name."""

    @abc.abstractmethod
    async def delete_project(self, name: str) -> list[DatabaseRecord] | None:
        """
        Atomically remove a project and all its database records.

        Returns the removed records, or None if the project did not exist.
        """

    # ── Databases ───────────────────────────────────────────
    @abc.abstractmethod
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
    ) -> DatabaseRecord: ...

    @abc.abstractmethod
    async def get_database(
        self, project_id: uuid.UUID, env: str, pr_number: int | None
    ) -> DatabaseRecord | None: ...

    @abc.abstractmethod
    async def get_database_by_name(self, name: str) -> DatabaseRecord | None: ...

    @abc.abstractmethod
    async def list_databases(self, project_id: uuid.UUID) -> list[DatabaseRecord]:
        """Records of one project ordered by name."""

    @abc.abstractmethod
    async def list_all_databases(self) -> list[DatabaseRecord]:
        """Every record ordered by name."""

    @abc.abstractmethod
    async def delete_database(self, name: str) -> bool:
        """Delete by unique name. False if no such record."""

    # ── Cleanup queries ─────────────────────────────────────
    @abc.abstractmethod
    async def list_expired(self, now: datetime.datetime) -> list[DatabaseRecord]:
        """Records with expires_at at or before `now`."""

    @abc.abstractmethod
    async def list_older_than(
        self, env: str, cutoff: datetime.datetime
    ) -> list[DatabaseRecord]:
        """Records of `env` created strictly before `cutoff`."""

    async def close(self) -> None:
        """Release backend resources. Default: nothing to release."""
