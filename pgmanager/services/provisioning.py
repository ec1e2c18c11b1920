"""
Provisioning orchestrator.

Composes naming rules, the metadata store and the engine client into the
create / read / delete / cleanup workflows. The two backing systems fail
independently and share no transaction, so consistency comes from
ordering and compensation:

  create:  validate → check metadata → create live → write metadata
           (metadata failure or cancellation → drop live, shielded)
  delete:  drop live → delete metadata
           (live failure → keep metadata so the delete can be retried)
  cleanup: per record, same as delete; failures are collected, never fatal
  project: delete metadata (atomic) → drop each live database, best effort

The Provisioner holds references only. All state lives in the store and
on the cluster, so one instance serves any number of concurrent requests.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field

from pgmanager.errors import (
    AlreadyExists,
    DatabaseNotFound,
    DeleteFailed,
    DuplicateRecord,
    EngineError,
    EngineUnavailable,
    InvalidPRNumber,
    MetadataWriteFailed,
    MissingPRNumber,
    PgManagerError,
    ProjectNotFound,
    ProvisionFailed,
    StoreError,
)
from pgmanager.services import naming
from pgmanager.services.credentials import connection_string, generate_password
from pgmanager.services.pg_admin import EngineClient
from pgmanager.store.base import DatabaseRecord, MetadataStore, ProjectRecord

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


# ── Options and results ─────────────────────────────────────
@dataclass(frozen=True, slots=True)
class ProvisionerOptions:
    """
    Values the orchestrator needs from configuration.

    Attributes:
        ttl:     Lifetime of PR databases (expires_at = created_at + ttl).
        host:    Host written into connection strings handed to clients.
        port:    Port written into connection strings.
        sslmode: libpq sslmode written into connection strings.
    """

    ttl: datetime.timedelta = datetime.timedelta(hours=168)
    host: str = "localhost"
    port: int = 5432
    sslmode: str = "disable"


@dataclass(frozen=True, slots=True)
class DatabaseInfo:
    """A database as shown to callers. `password` is the real secret."""

    project: str
    env: str
    pr_number: int | None
    database_name: str
    user_name: str
    password: str
    host: str
    port: int
    connection_string: str
    created_at: datetime.datetime
    expires_at: datetime.datetime | None

    @property
    def env_token(self) -> str:
        return naming.env_token(self.env, self.pr_number)


@dataclass(slots=True)
class ProjectDeletion:
    project: str
    databases: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class CleanupReport:
    deleted: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class OrphanReport:
    """
    Divergence between the cluster and the metadata store.

    live_only:     managed-looking databases on the cluster with no record.
    metadata_only: records whose live database is missing.
    """

    live_only: list[str]
    metadata_only: list[str]


def _reason(exc: PgManagerError) -> str:
    """Client-safe description of a per-record failure."""
    if exc.public:
        return str(exc)
    if isinstance(exc, EngineUnavailable):
        return "database server unavailable"
    if isinstance(exc, EngineError):
        return "live drop failed"
    if isinstance(exc, StoreError):
        return "metadata delete failed"
    return "internal error"


# ── Orchestrator ────────────────────────────────────────────
class Provisioner:
    def __init__(
        self,
        store: MetadataStore,
        engine: EngineClient,
        options: ProvisionerOptions | None = None,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.engine = engine
        self.options = options or ProvisionerOptions()
        self._clock = clock

    # ── Projects ────────────────────────────────────────────
    async def create_project(self, name: str) -> ProjectRecord:
        naming.validate_project_name(name)

        if await self.store.get_project(name) is not None:
            raise AlreadyExists(f"project '{name}' already exists")

        try:
            project = await self.store.create_project(name, self._clock())
        except DuplicateRecord as exc:
            # Lost a race against a concurrent create of the same name.
            raise AlreadyExists(f"project '{name}' already exists") from exc

        logger.info("Created project %s", name)
        return project

    async def list_projects(self) -> list[ProjectRecord]:
        return await self.store.list_projects()

    async def delete_project(self, name: str) -> ProjectDeletion:
        removed = await self.store.delete_project(name)
        if removed is None:
            raise ProjectNotFound(f"project '{name}' not found")

        report = ProjectDeletion(project=name, databases=[r.name for r in removed])
        for record in removed:
            try:
                await self.engine.drop_database(record.name, record.user_name)
            except PgManagerError as exc:
                logger.warning(
                    "Project %s deleted but live drop of %s failed: %s",
                    name, record.name, exc,
                )
                report.failed[record.name] = _reason(exc)
                continue
            report.dropped.append(record.name)

        logger.info(
            "Deleted project %s (%d databases, %d drop failures)",
            name, len(report.databases), len(report.failed),
        )
        return report

    # ── Databases ───────────────────────────────────────────
    async def create_database(
        self, project: str, env: str, pr_number: int | None = None
    ) -> DatabaseInfo:
        env, pr_number = self._validate_target(env, pr_number)
        project_record = await self._require_project(project)

        if await self.store.get_database(project_record.id, env, pr_number) is not None:
            raise AlreadyExists(
                f"database already exists for {project}/{naming.env_token(env, pr_number)}"
            )

        db_name = naming.database_name(project, env, pr_number)
        db_user = naming.user_name(db_name)
        password = generate_password()

        created_at = self._clock()
        expires_at = created_at + self.options.ttl if env == naming.ENV_PR else None

        try:
            await self.engine.create_database(db_name, db_user, password)
        except EngineUnavailable:
            raise
        except EngineError as exc:
            logger.error("Live create of %s failed: %s", db_name, exc)
            raise ProvisionFailed(f"failed to create database {db_name}") from exc
        except asyncio.CancelledError:
            await self._compensate(db_name, db_user)
            raise

        try:
            record = await self.store.create_database(
                project_id=project_record.id,
                name=db_name,
                user_name=db_user,
                password=password,
                env=env,
                pr_number=pr_number,
                created_at=created_at,
                expires_at=expires_at,
            )
        except StoreError as exc:
            logger.error("Metadata write for %s failed: %s", db_name, exc)
            orphan = await self._compensate(db_name, db_user)
            message = f"failed to record database {db_name}"
            if orphan is not None:
                message += f"; live database {orphan} may be orphaned"
            raise MetadataWriteFailed(message, orphan=orphan) from exc
        except asyncio.CancelledError:
            await self._compensate(db_name, db_user)
            raise

        logger.info("Provisioned %s for project %s", db_name, project)
        return self._info(project, record)

    async def get_database(
        self, project: str, env: str, pr_number: int | None = None
    ) -> DatabaseInfo:
        env, pr_number = self._validate_target(env, pr_number)
        project_record = await self._require_project(project)
        record = await self._require_database(project_record, env, pr_number)
        return self._info(project, record)

    async def list_databases(self, project: str = "") -> list[DatabaseInfo]:
        """Databases of one project, or of every project when `project` is empty."""
        if project:
            project_record = await self._require_project(project)
            records = await self.store.list_databases(project_record.id)
            return [self._info(project, r) for r in records]

        names = {p.id: p.name for p in await self.store.list_projects()}
        records = await self.store.list_all_databases()
        return [self._info(names.get(r.project_id, ""), r) for r in records]

    async def delete_database(
        self, project: str, env: str, pr_number: int | None = None
    ) -> str:
        env, pr_number = self._validate_target(env, pr_number)
        project_record = await self._require_project(project)
        record = await self._require_database(project_record, env, pr_number)

        try:
            await self.engine.drop_database(record.name, record.user_name)
        except EngineUnavailable:
            raise
        except EngineError as exc:
            logger.error("Live drop of %s failed, metadata kept: %s", record.name, exc)
            raise DeleteFailed(f"failed to drop database {record.name}") from exc

        await self.store.delete_database(record.name)
        logger.info("Deleted database %s", record.name)
        return record.name

    # ── Cleanup ─────────────────────────────────────────────
    async def cleanup(self, older_than: datetime.timedelta) -> CleanupReport:
        """
        Reclaim expired databases and PR databases older than `older_than`.

        Safe to run concurrently with itself: a record another run already
        removed is skipped silently.
        """
        now = self._clock()
        expired = await self.store.list_expired(now)
        stale = await self.store.list_older_than(naming.ENV_PR, now - older_than)

        candidates: dict[str, DatabaseRecord] = {}
        for record in (*expired, *stale):
            candidates.setdefault(record.name, record)

        report = CleanupReport()
        for name, record in candidates.items():
            try:
                await self.engine.drop_database(name, record.user_name)
                removed = await self.store.delete_database(name)
            except PgManagerError as exc:
                logger.warning("Cleanup of %s failed: %s", name, exc)
                report.failed[name] = _reason(exc)
                continue
            if removed:
                report.deleted.append(name)

        report.deleted.sort()
        logger.info(
            "Cleanup removed %d databases, %d failed",
            len(report.deleted), len(report.failed),
        )
        return report

    async def find_orphans(self) -> OrphanReport:
        """Compare the cluster with the metadata store. Read-only."""
        projects = await self.store.list_projects()
        records = await self.store.list_all_databases()
        live = await self.engine.list_databases()

        recorded = {r.name for r in records}
        live_set = set(live)

        pattern = _managed_name_pattern([p.name for p in projects])
        live_only = sorted(
            name for name in live_set - recorded
            if pattern is not None and pattern.match(name)
        )
        metadata_only = sorted(recorded - live_set)
        return OrphanReport(live_only=live_only, metadata_only=metadata_only)

    async def reclaim_orphans(self) -> CleanupReport:
        """
        Drop every live-only database (and its role) found by find_orphans().

        A create that is between its live create and its metadata write
        also looks live-only, so run this when no creates are in flight.
        Failures are collected like cleanup's; metadata is never touched.
        """
        orphans = await self.find_orphans()

        report = CleanupReport()
        for name in orphans.live_only:
            try:
                await self.engine.drop_database(name, naming.user_name(name))
            except PgManagerError as exc:
                logger.warning("Reclaim of orphan %s failed: %s", name, exc)
                report.failed[name] = _reason(exc)
                continue
            report.deleted.append(name)

        logger.info(
            "Reclaimed %d orphaned databases, %d failed",
            len(report.deleted), len(report.failed),
        )
        return report

    # ── Internals ───────────────────────────────────────────
    def _validate_target(
        self, env: str, pr_number: int | None
    ) -> tuple[str, int | None]:
        naming.validate_env(env)
        if env == naming.ENV_PR:
            if pr_number is None:
                raise MissingPRNumber("PR number is required for PR databases")
            naming.validate_pr_number(pr_number)
        elif pr_number is not None:
            raise InvalidPRNumber(f"PR number is only valid for the '{naming.ENV_PR}' environment")
        return env, pr_number

    async def _require_project(self, name: str) -> ProjectRecord:
        project = await self.store.get_project(name)
        if project is None:
            raise ProjectNotFound(f"project '{name}' not found")
        return project

    async def _require_database(
        self, project: ProjectRecord, env: str, pr_number: int | None
    ) -> DatabaseRecord:
        record = await self.store.get_database(project.id, env, pr_number)
        if record is None:
            raise DatabaseNotFound(
                f"database not found for {project.name}/{naming.env_token(env, pr_number)}"
            )
        return record

    async def _compensate(self, db_name: str, db_user: str) -> str | None:
        """
        Drop a live database whose metadata could not be written.

        Returns the database name if it may still exist, else None.
        Shielded so a cancelled caller cannot interrupt the drop.
        """
        try:
            await asyncio.shield(self.engine.drop_database(db_name, db_user))
        except PgManagerError as exc:
            logger.critical(
                "Compensating drop of %s failed, live database may be orphaned: %s",
                db_name, exc,
            )
            return db_name
        logger.info("Compensated: dropped %s after failed metadata write", db_name)
        return None

    def _info(self, project: str, record: DatabaseRecord) -> DatabaseInfo:
        opts = self.options
        return DatabaseInfo(
            project=project,
            env=record.env,
            pr_number=record.pr_number,
            database_name=record.name,
            user_name=record.user_name,
            password=record.password,
            host=opts.host,
            port=opts.port,
            connection_string=connection_string(
                host=opts.host,
                port=opts.port,
                dbname=record.name,
                user=record.user_name,
                password=record.password,
                sslmode=opts.sslmode,
            ),
            created_at=record.created_at,
            expires_at=record.expires_at,
        )


def _managed_name_pattern(projects: list[str]) -> re.Pattern[str] | None:
    if not projects:
        return None
    alternatives = "|".join(re.escape(p) for p in sorted(projects))
    envs = "|".join(e for e in naming.VALID_ENVS if e != naming.ENV_PR)
    return re.compile(rf"^(?:{alternatives})_(?:{envs}|pr_[0-9]+)$")
