# tests/conftest.py
from __future__ import annotations

import datetime

import pytest

from pgmanager.errors import (
    EngineError,
    EngineUnavailable,
    LiveDatabaseExists,
    StoreUnavailable,
)
from pgmanager.services.pg_admin import EngineClient
from pgmanager.services.provisioning import Provisioner, ProvisionerOptions
from pgmanager.store.memory import InMemoryMetadataStore
from pgmanager.store.sql import SqlMetadataStore

START = datetime.datetime(2026, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)


class FixedClock:
    """Deterministic clock; advance() moves it forward."""

    def __init__(self, now: datetime.datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, delta: datetime.timedelta) -> None:
        self.now += delta


class FakeEngineClient(EngineClient):
    """
    In-memory stand-in for the PostgreSQL cluster.

    Failure injection:
        fail_create / fail_drop: database names whose create/drop raises EngineError
        unavailable:             every call raises EngineUnavailable
    """

    def __init__(self) -> None:
        self.databases: dict[str, str] = {}  # name -> owner
        self.roles: dict[str, str] = {}      # user -> password
        self.fail_create: set[str] = set()
        self.fail_drop: set[str] = set()
        self.unavailable = False
        self.drop_calls: list[str] = []

    def _check(self) -> None:
        if self.unavailable:
            raise EngineUnavailable("cluster down")

    async def create_database(self, name: str, user: str, password: str) -> None:
        self._check()
        if name in self.fail_create:
            raise EngineError(f"injected create failure for {name}")
        # An existing role is tolerated, but its password only changes once
        # the database is ours.
        if name in self.databases:
            raise LiveDatabaseExists(f"database {name} already exists")
        self.databases[name] = user
        self.roles[user] = password

    async def drop_database(self, name: str, user: str) -> None:
        self._check()
        self.drop_calls.append(name)
        if name in self.fail_drop:
            raise EngineError(f"injected drop failure for {name}")
        self.databases.pop(name, None)
        self.roles.pop(user, None)

    async def database_exists(self, name: str) -> bool:
        self._check()
        return name in self.databases

    async def list_databases(self) -> list[str]:
        self._check()
        return sorted(self.databases)

    async def ping(self) -> None:
        self._check()


class FlakyStore(InMemoryMetadataStore):
    """In-memory store whose database inserts/deletes can be made to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_create_database = False
        self.fail_delete_database: set[str] = set()

    async def create_database(self, **kwargs):
        if self.fail_create_database:
            raise StoreUnavailable("injected metadata write failure")
        return await super().create_database(**kwargs)

    async def delete_database(self, name: str) -> bool:
        if name in self.fail_delete_database:
            raise StoreUnavailable("injected metadata delete failure")
        return await super().delete_database(name)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def engine() -> FakeEngineClient:
    return FakeEngineClient()


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def options() -> ProvisionerOptions:
    return ProvisionerOptions(
        ttl=datetime.timedelta(hours=168),
        host="db.example.com",
        port=5432,
        sslmode="require",
    )


@pytest.fixture
def provisioner(store, engine, options, clock) -> Provisioner:
    return Provisioner(store, engine, options, clock=clock)


@pytest.fixture(params=["memory", "sqlite"])
async def metadata_store(request, tmp_path):
    """Each metadata-store contract test runs against both backends."""
    if request.param == "memory":
        yield InMemoryMetadataStore()
        return

    sql_store = SqlMetadataStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'meta.db'}")
    await sql_store.create_schema()
    try:
        yield sql_store
    finally:
        await sql_store.close()
