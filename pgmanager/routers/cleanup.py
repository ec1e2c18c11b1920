"""
Maintenance router.

Endpoints:
  POST /api/cleanup  — reclaim expired and stale PR databases
  GET  /api/orphans  — report divergence between cluster and metadata
  POST /api/orphans/reclaim — drop databases that exist only on the cluster
"""

from typing import Annotated

from fastapi import APIRouter, Body, Depends

from pgmanager.auth.dependencies import require_token
from pgmanager.routers.deps import ProvisionerDep
from pgmanager.schemas.cleanup import CleanupReportOut, CleanupRequest, OrphanReportOut
from pgmanager.services.naming import parse_duration

router = APIRouter(tags=["Maintenance"], dependencies=[Depends(require_token)])


@router.post(
    "/cleanup",
    response_model=CleanupReportOut,
    summary="Remove expired and old PR databases",
    description=(
        "Removes every database past its expiry, plus PR databases created "
        "more than `older_than` ago (default 7d). Per-database failures are "
        "reported in `failed` and do not stop the run."
    ),
)
async def run_cleanup(
    provisioner: ProvisionerDep,
    payload: Annotated[CleanupRequest | None, Body()] = None,
) -> CleanupReportOut:
    payload = payload or CleanupRequest()
    report = await provisioner.cleanup(parse_duration(payload.older_than))
    return CleanupReportOut.model_validate(report)


@router.get(
    "/orphans",
    response_model=OrphanReportOut,
    summary="Find databases that exist on only one side",
)
async def find_orphans(provisioner: ProvisionerDep) -> OrphanReportOut:
    report = await provisioner.find_orphans()
    return OrphanReportOut.model_validate(report)


@router.post(
    "/orphans/reclaim",
    response_model=CleanupReportOut,
    summary="Drop databases that exist only on the cluster",
    description=(
        "Drops every `live_only` database reported by GET /orphans, together "
        "with its role. A create still between its live create and its "
        "metadata write looks the same, so run this when no creates are in "
        "flight. Per-database failures are reported in `failed`."
    ),
)
async def reclaim_orphans(provisioner: ProvisionerDep) -> CleanupReportOut:
    report = await provisioner.reclaim_orphans()
    return CleanupReportOut.model_validate(report)
