"""Pydantic v2 schemas for maintenance endpoints (cleanup, orphans)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_OLDER_THAN = "7d"


class CleanupRequest(BaseModel):
    """
    Payload accepted by POST /api/cleanup (the body itself is optional).

    `older_than` is parsed by the same duration rules as the CLI flag,
    so a bad value is a 400 INVALID_FORMAT rather than a 422.
    """

    model_config = ConfigDict(extra="forbid")

    older_than: str = Field(
        default=DEFAULT_OLDER_THAN,
        examples=["7d", "24h"],
        description="PR databases created before now minus this are removed.",
    )


class CleanupReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    deleted: list[str]
    failed: dict[str, str]


class OrphanReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    live_only: list[str]
    metadata_only: list[str]
