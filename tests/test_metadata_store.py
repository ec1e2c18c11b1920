"""Contract tests shared by the in-memory and SQL (SQLite) metadata stores."""

import datetime
import uuid

import pytest

from pgmanager.errors import DuplicateRecord, StoreError

T0 = datetime.datetime(2026, 1, 1, tzinfo=datetime.timezone.utc)
HOUR = datetime.timedelta(hours=1)


async def _add_db(store, project, env, pr_number=None, *, created_at=T0, expires_at=None):
    name = f"{project.name}_pr_{pr_number}" if pr_number else f"{project.name}_{env}"
    return await store.create_database(
        project_id=project.id,
        name=name,
        user_name=f"{name}_user",
        password="p" * 32,
        env=env,
        pr_number=pr_number,
        created_at=created_at,
        expires_at=expires_at,
    )


async def test_project_roundtrip(metadata_store):
    created = await metadata_store.create_project("shop", T0)
    fetched = await metadata_store.get_project("shop")

    assert fetched == created
    assert fetched.created_at == T0
    assert fetched.created_at.tzinfo is not None


async def test_missing_lookups_return_none(metadata_store):
    assert await metadata_store.get_project("nope") is None
    assert await metadata_store.get_database_by_name("nope_dev") is None
    assert await metadata_store.get_database(uuid.uuid4(), "dev", None) is None


async def test_duplicate_project_rejected(metadata_store):
    await metadata_store.create_project("shop", T0)
    with pytest.raises(DuplicateRecord):
        await metadata_store.create_project("shop", T0)


async def test_list_projects_sorted(metadata_store):
    for name in ("zeta", "alpha", "mid"):
        await metadata_store.create_project(name, T0)
    assert [p.name for p in await metadata_store.list_projects()] == ["alpha", "mid", "zeta"]


async def test_database_lookup_by_target_and_name(metadata_store):
    project = await metadata_store.create_project("shop", T0)
    dev = await _add_db(metadata_store, project, "dev")
    pr = await _add_db(metadata_store, project, "pr", 7, expires_at=T0 + HOUR)

    assert await metadata_store.get_database(project.id, "dev", None) == dev
    assert await metadata_store.get_database(project.id, "pr", 7) == pr
    assert await metadata_store.get_database(project.id, "pr", 8) is None
    assert await metadata_store.get_database_by_name("shop_pr_7") == pr
    assert pr.expires_at == T0 + HOUR


async def test_duplicate_database_rejected(metadata_store):
    project = await metadata_store.create_project("shop", T0)
    await _add_db(metadata_store, project, "dev")
    with pytest.raises(DuplicateRecord):
        await _add_db(metadata_store, project, "dev")


async def test_database_requires_existing_project(metadata_store):
    ghost = type("Ghost", (), {"id": uuid.uuid4(), "name": "ghost"})()
    with pytest.raises(StoreError):
        await _add_db(metadata_store, ghost, "dev")


async def test_list_databases_per_project_and_all(metadata_store):
    shop = await metadata_store.create_project("shop", T0)
    blog = await metadata_store.create_project("blog", T0)
    await _add_db(metadata_store, shop, "prod")
    await _add_db(metadata_store, shop, "dev")
    await _add_db(metadata_store, blog, "dev")

    assert [d.name for d in await metadata_store.list_databases(shop.id)] == ["shop_dev", "shop_prod"]
    assert [d.name for d in await metadata_store.list_all_databases()] == [
        "blog_dev", "shop_dev", "shop_prod",
    ]


async def test_delete_database_reports_whether_removed(metadata_store):
    project = await metadata_store.create_project("shop", T0)
    await _add_db(metadata_store, project, "dev")

    assert await metadata_store.delete_database("shop_dev") is True
    assert await metadata_store.delete_database("shop_dev") is False
    assert await metadata_store.get_database_by_name("shop_dev") is None


async def test_delete_project_cascades(metadata_store):
    shop = await metadata_store.create_project("shop", T0)
    blog = await metadata_store.create_project("blog", T0)
    await _add_db(metadata_store, shop, "prod")
    await _add_db(metadata_store, shop, "pr", 3, expires_at=T0 + HOUR)
    await _add_db(metadata_store, blog, "dev")

    removed = await metadata_store.delete_project("shop")

    assert sorted(r.name for r in removed) == ["shop_pr_3", "shop_prod"]
    assert await metadata_store.get_project("shop") is None
    assert [d.name for d in await metadata_store.list_all_databases()] == ["blog_dev"]


async def test_delete_missing_project_returns_none(metadata_store):
    assert await metadata_store.delete_project("nope") is None


async def test_list_expired_is_inclusive(metadata_store):
    project = await metadata_store.create_project("shop", T0)
    await _add_db(metadata_store, project, "pr", 1, expires_at=T0 + HOUR)
    await _add_db(metadata_store, project, "pr", 2, expires_at=T0 + 3 * HOUR)
    await _add_db(metadata_store, project, "dev")

    assert await metadata_store.list_expired(T0) == []
    assert [d.name for d in await metadata_store.list_expired(T0 + HOUR)] == ["shop_pr_1"]
    assert [d.name for d in await metadata_store.list_expired(T0 + 5 * HOUR)] == [
        "shop_pr_1", "shop_pr_2",
    ]


async def test_list_older_than_is_strict_and_env_scoped(metadata_store):
    project = await metadata_store.create_project("shop", T0)
    await _add_db(metadata_store, project, "pr", 1, created_at=T0, expires_at=T0 + 100 * HOUR)
    await _add_db(metadata_store, project, "pr", 2, created_at=T0 + 2 * HOUR, expires_at=T0 + 100 * HOUR)
    await _add_db(metadata_store, project, "dev", created_at=T0)

    assert await metadata_store.list_older_than("pr", T0) == []
    assert [d.name for d in await metadata_store.list_older_than("pr", T0 + HOUR)] == ["shop_pr_1"]
    assert [d.name for d in await metadata_store.list_older_than("dev", T0 + HOUR)] == ["shop_dev"]
