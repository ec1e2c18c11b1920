"""
Pydantic v2 schemas for database endpoints.

Separation:
  • DatabaseCreate      — what the CLIENT sends.
  • DatabaseOut         — what every read returns. No secrets.
  • DatabaseCreatedOut  — returned once, at creation, with the password
                          and connection string.
"""

from __future__ import annotations

import datetime

from pydantic import BaseModel, ConfigDict, Field


# ── Request schema ──────────────────────────────────────────
class DatabaseCreate(BaseModel):
    """Payload accepted by POST /api/projects/{name}/databases."""

    model_config = ConfigDict(extra="forbid")

    env: str = Field(
        ...,
        examples=["dev", "pr"],
        description="One of prod, dev, staging, pr.",
    )
    number: int | None = Field(
        default=None,
        examples=[123],
        description="PR number. Required for env=pr, rejected otherwise.",
    )


# ── Response schemas ────────────────────────────────────────
class DatabaseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    project: str
    env: str
    pr_number: int | None
    env_token: str
    database_name: str
    user_name: str
    host: str
    port: int
    created_at: datetime.datetime
    expires_at: datetime.datetime | None


class DatabaseCreatedOut(DatabaseOut):
    password: str
    connection_string: str
