"""
Pydantic v2 schemas for project endpoints.

Project names are validated by the naming rules in the service layer,
not here, so the API and the CLI reject exactly the same names with
exactly the same messages.
"""

from __future__ import annotations

import datetime
import uuid

from pydantic import BaseModel, ConfigDict, Field


class ProjectCreate(BaseModel):
    """Payload accepted by POST /api/projects."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(
        ...,
        examples=["myapp"],
        description="2-32 chars, lowercase letter first, then [a-z0-9_].",
    )


class ProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    created_at: datetime.datetime


class ProjectDeletionOut(BaseModel):
    """
    Result of DELETE /api/projects/{name}.

    The project and every record are gone once this is returned.
    `failed` lists databases whose live drop did not succeed; they may
    still exist on the cluster (see GET /api/orphans).
    """

    model_config = ConfigDict(from_attributes=True)

    project: str
    databases: list[str]
    dropped: list[str]
    failed: dict[str, str]
