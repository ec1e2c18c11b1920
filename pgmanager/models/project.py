"""
Project model — a named grouping of provisioned databases.

A project has no live-cluster counterpart; it exists only in metadata.
Deleting it cascades to every ManagedDatabase row it owns.
"""

import uuid
import datetime

from sqlalchemy import String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pgmanager.core.database import Base, UTCDateTime


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Project(Base):
    """One project — the owner of zero or more managed databases."""

    __tablename__ = "pgmanager_projects"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=_utcnow,
    )

    __table_args__ = (UniqueConstraint("name", name="uq_projects_name"),)

    def __repr__(self) -> str:
        return f"<Project id={self.id!s:.8} name={self.name!r}>"
