"""
SQLAlchemy model for the `pgmanager_databases` table.

Each row is the bookkeeping side of one live database + login role pair.

Design notes:
  • `name` is globally unique — this constraint is what turns the second
    of two racing creates into a metadata-write failure (and thus a
    compensating drop) instead of a silent duplicate.
  • (project_id, env, pr_number) is unique as well. NULL pr_number rows
    are already covered by the name constraint, since non-PR names are
    derived from (project, env) alone.
  • `password` is stored in plaintext; it is only ever returned to the
    caller at creation time.
  • Indexes on env and expires_at support the cleanup queries.
"""

import uuid
import datetime

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from pgmanager.core.database import Base, UTCDateTime
from pgmanager.models.project import _utcnow


class ManagedDatabase(Base):
    """Metadata for one provisioned database."""

    __tablename__ = "pgmanager_databases"

    # ── Primary key ─────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # ── Ownership ───────────────────────────────────────────
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("pgmanager_projects.id", ondelete="CASCADE"),
        nullable=False,
    )

    # ── Identity on the live cluster ────────────────────────
    name: Mapped[str] = mapped_column(String(63), nullable=False)
    user_name: Mapped[str] = mapped_column(String(63), nullable=False)
    password: Mapped[str] = mapped_column(Text, nullable=False)

    # ── Classification ──────────────────────────────────────
    env: Mapped[str] = mapped_column(String(10), nullable=False)
    pr_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # ── Lifecycle ───────────────────────────────────────────
    created_at: Mapped[datetime.datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=_utcnow,
    )
    expires_at: Mapped[datetime.datetime | None] = mapped_column(
        UTCDateTime,
        nullable=True,
    )

    # ── Table-level constraints ─────────────────────────────
    __table_args__ = (
        UniqueConstraint("name", name="uq_databases_name"),
        UniqueConstraint("project_id", "env", "pr_number", name="uq_databases_project_env_pr"),
        CheckConstraint(
            "env IN ('prod', 'dev', 'staging', 'pr')",
            name="ck_databases_env_valid",
        ),
        CheckConstraint(
            "(env = 'pr') = (pr_number IS NOT NULL)",
            name="ck_databases_pr_number_iff_pr",
        ),
        Index("ix_databases_project_id", "project_id"),
        Index("ix_databases_env", "env"),
        Index("ix_databases_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ManagedDatabase id={self.id!s:.8} name={self.name!r} "
            f"env={self.env}>"
        )
