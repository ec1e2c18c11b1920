"""
FastAPI application entrypoint.

Lifespan:
  • On startup: build the Provisioner (metadata store + cluster client)
    unless one was injected, and check the cluster is reachable.
  • On shutdown: dispose both engines cleanly.

Routers (all under /api):
  • /health                — readiness probe, no auth
  • /projects              — project lifecycle
  • /databases, /projects/{name}/databases — database lifecycle
  • /cleanup, /orphans     — maintenance
"""

import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pgmanager.core.config import VERSION, Settings, get_settings
from pgmanager.core.errors import register_exception_handlers
from pgmanager.core.logger import setup_logging
from pgmanager.core.runtime import open_runtime
from pgmanager.errors import EngineError
from pgmanager.routers.cleanup import router as cleanup_router
from pgmanager.routers.databases import router as databases_router
from pgmanager.routers.projects import router as projects_router
from pgmanager.routers.system import router as system_router
from pgmanager.services.provisioning import Provisioner

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    provisioner: Provisioner | None = None,
) -> FastAPI:
    """
    Build the API.

    Tests pass a Provisioner over an in-memory store and a fake engine;
    production leaves it None and the lifespan wires the real one.
    """
    settings = settings or get_settings()

    # ── Lifespan ────────────────────────────────────────────
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Startup / shutdown lifecycle."""
        async with AsyncExitStack() as stack:
            if provisioner is None:
                app.state.provisioner = await stack.enter_async_context(
                    open_runtime(settings)
                )

            if settings.REQUIRE_TOKEN and not settings.API_TOKEN:
                logger.warning(
                    "REQUIRE_TOKEN is set but API_TOKEN is empty: "
                    "every authenticated request will be rejected."
                )

            try:
                await app.state.provisioner.engine.ping()
                logger.info("PostgreSQL connection verified ✓")
            except EngineError:
                logger.warning(
                    "Could not reach PostgreSQL on startup. "
                    "The app will start, but requests will fail until it is available."
                )

            yield  # ← application runs here

        logger.info("Engines disposed ✓")

    # ── App ─────────────────────────────────────────────────
    app = FastAPI(
        title=settings.APP_NAME,
        version=VERSION,
        description="Provision and reclaim per-environment PostgreSQL databases.",
        lifespan=lifespan,
    )
    app.state.settings = settings
    if provisioner is not None:
        app.state.provisioner = provisioner

    if settings.ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.ALLOWED_ORIGINS,
            allow_methods=["GET", "POST", "DELETE"],
            allow_headers=["Authorization", "Content-Type"],
        )

    register_exception_handlers(app)

    # Mount routers
    app.include_router(system_router, prefix="/api")
    app.include_router(projects_router, prefix="/api")
    app.include_router(databases_router, prefix="/api")
    app.include_router(cleanup_router, prefix="/api")

    return app


def build_app() -> FastAPI:
    """uvicorn factory: `uvicorn pgmanager.main:build_app --factory`."""
    settings = get_settings()
    setup_logging(settings.DEBUG)
    return create_app(settings)
