"""
Builds a ready Provisioner from Settings and tears it down afterwards.

Shared by the API lifespan and the CLI so both transports wire the
store, the engine client and the options the same way.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from pgmanager.core.config import Settings
from pgmanager.services.pg_admin import PostgresAdminClient
from pgmanager.services.provisioning import Provisioner, ProvisionerOptions
from pgmanager.store.sql import SqlMetadataStore

logger = logging.getLogger(__name__)


def build_options(settings: Settings) -> ProvisionerOptions:
    return ProvisionerOptions(
        ttl=settings.CLEANUP_DEFAULT_TTL,
        host=settings.public_host,
        port=settings.POSTGRES_PORT,
        sslmode=settings.POSTGRES_SSLMODE,
    )


@asynccontextmanager
async def open_runtime(settings: Settings) -> AsyncIterator[Provisioner]:
    """Yield a Provisioner backed by the configured store and cluster."""
    store = SqlMetadataStore.from_url(settings.metadata_url, echo=settings.DEBUG)
    engine = PostgresAdminClient(settings.admin_url)
    logger.debug(
        "Runtime opened (cluster %s:%s)", settings.POSTGRES_HOST, settings.POSTGRES_PORT
    )
    try:
        yield Provisioner(store, engine, build_options(settings))
    finally:
        await engine.close()
        await store.close()
