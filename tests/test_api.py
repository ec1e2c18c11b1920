import datetime

import pytest
from httpx import ASGITransport, AsyncClient

from pgmanager.core.config import Settings
from pgmanager.main import create_app

TOKEN = "test-token"
AUTH = {"Authorization": f"Bearer {TOKEN}"}


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, API_TOKEN=TOKEN, REQUIRE_TOKEN=True)


@pytest.fixture
async def client(settings, provisioner):
    app = create_app(settings, provisioner)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ── Auth ────────────────────────────────────────────────────
async def test_health_needs_no_token(client):
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy"}


async def test_health_reports_unavailable_cluster(client, engine):
    engine.unavailable = True
    resp = await client.get("/api/health")
    assert resp.status_code == 503


@pytest.mark.parametrize(
    "headers",
    [{}, {"Authorization": "Bearer wrong"}, {"Authorization": TOKEN}, {"Authorization": "Basic abc"}],
)
async def test_protected_routes_reject_bad_tokens(client, headers):
    resp = await client.get("/api/projects", headers=headers)
    assert resp.status_code == 401
    assert resp.headers["WWW-Authenticate"] == "Bearer"


async def test_required_token_without_configured_token_fails_closed(provisioner):
    settings = Settings(_env_file=None, API_TOKEN="", REQUIRE_TOKEN=True)
    app = create_app(settings, provisioner)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        resp = await ac.get("/api/projects", headers={"Authorization": "Bearer "})
    assert resp.status_code == 401


async def test_auth_disabled(provisioner):
    settings = Settings(_env_file=None, API_TOKEN="", REQUIRE_TOKEN=False)
    app = create_app(settings, provisioner)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        resp = await ac.get("/api/projects")
    assert resp.status_code == 200


# ── Projects ────────────────────────────────────────────────
async def test_project_crud(client):
    resp = await client.post("/api/projects", json={"name": "myapp"}, headers=AUTH)
    assert resp.status_code == 201
    assert resp.json()["name"] == "myapp"

    resp = await client.post("/api/projects", json={"name": "myapp"}, headers=AUTH)
    assert resp.status_code == 409
    assert resp.json()["code"] == "ALREADY_EXISTS"

    resp = await client.get("/api/projects", headers=AUTH)
    assert [p["name"] for p in resp.json()] == ["myapp"]

    resp = await client.delete("/api/projects/myapp", headers=AUTH)
    assert resp.status_code == 200
    assert resp.json() == {"project": "myapp", "databases": [], "dropped": [], "failed": {}}

    resp = await client.delete("/api/projects/myapp", headers=AUTH)
    assert resp.status_code == 404
    assert resp.json()["code"] == "PROJECT_NOT_FOUND"


async def test_invalid_project_name_is_400(client):
    resp = await client.post("/api/projects", json={"name": "Bad"}, headers=AUTH)
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_NAME"


async def test_unknown_body_field_is_422(client):
    resp = await client.post("/api/projects", json={"name": "ok", "extra": 1}, headers=AUTH)
    assert resp.status_code == 422
    assert resp.json()["code"] == "INVALID_INPUT"


# ── Databases ───────────────────────────────────────────────
async def test_database_lifecycle(client, engine):
    await client.post("/api/projects", json={"name": "myapp"}, headers=AUTH)

    resp = await client.post(
        "/api/projects/myapp/databases", json={"env": "pr", "number": 12}, headers=AUTH
    )
    assert resp.status_code == 201
    created = resp.json()
    assert created["database_name"] == "myapp_pr_12"
    assert created["env_token"] == "pr_12"
    assert len(created["password"]) == 32
    assert created["connection_string"].endswith("/myapp_pr_12?sslmode=require")
    assert created["expires_at"] is not None

    resp = await client.get("/api/projects/myapp/databases/pr_12", headers=AUTH)
    assert resp.status_code == 200
    body = resp.json()
    assert body["database_name"] == "myapp_pr_12"
    assert "password" not in body
    assert "connection_string" not in body

    resp = await client.get("/api/databases", headers=AUTH)
    assert [d["database_name"] for d in resp.json()] == ["myapp_pr_12"]
    assert all("password" not in d for d in resp.json())

    resp = await client.get("/api/projects/myapp/databases", headers=AUTH)
    assert [d["project"] for d in resp.json()] == ["myapp"]

    resp = await client.delete("/api/projects/myapp/databases/pr_12", headers=AUTH)
    assert resp.status_code == 204
    assert not await engine.database_exists("myapp_pr_12")

    resp = await client.get("/api/projects/myapp/databases/pr_12", headers=AUTH)
    assert resp.status_code == 404
    assert resp.json()["code"] == "DATABASE_NOT_FOUND"


@pytest.mark.parametrize(
    ("token", "code"),
    [("pr_abc", "INVALID_FORMAT"), ("pr_0", "INVALID_FORMAT"), ("qa", "INVALID_ENV")],
)
async def test_bad_env_token_is_400(client, token, code):
    await client.post("/api/projects", json={"name": "myapp"}, headers=AUTH)
    resp = await client.get(f"/api/projects/myapp/databases/{token}", headers=AUTH)
    assert resp.status_code == 400
    assert resp.json()["code"] == code


async def test_missing_pr_number_is_400(client):
    await client.post("/api/projects", json={"name": "myapp"}, headers=AUTH)
    resp = await client.post("/api/projects/myapp/databases", json={"env": "pr"}, headers=AUTH)
    assert resp.status_code == 400
    assert resp.json()["code"] == "MISSING_PR_NUMBER"


async def test_internal_errors_are_not_leaked(client, store):
    await client.post("/api/projects", json={"name": "myapp"}, headers=AUTH)
    store.fail_create_database = True

    resp = await client.post("/api/projects/myapp/databases", json={"env": "dev"}, headers=AUTH)

    assert resp.status_code == 500
    assert resp.json() == {"code": "INTERNAL_ERROR", "message": "internal server error"}


# ── Maintenance ─────────────────────────────────────────────
async def test_cleanup_default_and_explicit(client, clock):
    await client.post("/api/projects", json={"name": "myapp"}, headers=AUTH)
    await client.post("/api/projects/myapp/databases", json={"env": "pr", "number": 1}, headers=AUTH)

    resp = await client.post("/api/cleanup", headers=AUTH)
    assert resp.status_code == 200
    assert resp.json() == {"deleted": [], "failed": {}}

    clock.advance(datetime.timedelta(hours=2))
    resp = await client.post("/api/cleanup", json={"older_than": "1h"}, headers=AUTH)
    assert resp.json() == {"deleted": ["myapp_pr_1"], "failed": {}}


async def test_cleanup_rejects_bad_duration(client):
    resp = await client.post("/api/cleanup", json={"older_than": "soon"}, headers=AUTH)
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_FORMAT"


async def test_orphans(client, engine):
    await client.post("/api/projects", json={"name": "myapp"}, headers=AUTH)
    engine.databases["myapp_staging"] = "myapp_staging_user"

    resp = await client.get("/api/orphans", headers=AUTH)
    assert resp.status_code == 200
    assert resp.json() == {"live_only": ["myapp_staging"], "metadata_only": []}


async def test_reclaim_orphans(client, engine):
    await client.post("/api/projects", json={"name": "myapp"}, headers=AUTH)
    engine.databases["myapp_staging"] = "myapp_staging_user"

    resp = await client.post("/api/orphans/reclaim", headers=AUTH)
    assert resp.status_code == 200
    assert resp.json() == {"deleted": ["myapp_staging"], "failed": {}}
    assert "myapp_staging" not in engine.databases


async def test_reclaim_orphans_requires_token(client):
    resp = await client.post("/api/orphans/reclaim")
    assert resp.status_code == 401
