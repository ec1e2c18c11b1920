"""
System router — liveness and readiness.

GET /api/health is the only unauthenticated route: load balancers and
uptime checks call it without credentials.
"""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from pgmanager.errors import EngineError
from pgmanager.routers.deps import ProvisionerDep

logger = logging.getLogger(__name__)

router = APIRouter(tags=["System"])


@router.get(
    "/health",
    summary="Readiness probe",
    description="Pings the managed PostgreSQL cluster. 503 if it does not answer.",
)
async def health_check(provisioner: ProvisionerDep) -> JSONResponse:
    try:
        await provisioner.engine.ping()
    except EngineError as exc:
        logger.warning("Health check failed: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unavailable"},
        )
    return JSONResponse(content={"status": "healthy"})
