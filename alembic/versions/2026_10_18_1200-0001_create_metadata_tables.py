"""create projects and databases metadata tables

Revision ID: 0001
Revises:
Create Date: 2026-10-18

  - pgmanager_projects: one row per project, unique name
  - pgmanager_databases: one row per provisioned database, cascading
    from its project; unique name and unique (project, env, pr_number)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── 1. projects table ───────────────────────────────────
    op.create_table(
        "pgmanager_projects",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_projects_name"),
    )

    # ── 2. databases table ──────────────────────────────────
    op.create_table(
        "pgmanager_databases",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(63), nullable=False),
        sa.Column("user_name", sa.String(63), nullable=False),
        sa.Column("password", sa.Text(), nullable=False),
        sa.Column("env", sa.String(10), nullable=False),
        sa.Column("pr_number", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["project_id"], ["pgmanager_projects.id"], ondelete="CASCADE"
        ),
        sa.UniqueConstraint("name", name="uq_databases_name"),
        sa.UniqueConstraint(
            "project_id", "env", "pr_number", name="uq_databases_project_env_pr"
        ),
        sa.CheckConstraint(
            "env IN ('prod', 'dev', 'staging', 'pr')",
            name="ck_databases_env_valid",
        ),
        sa.CheckConstraint(
            "(env = 'pr') = (pr_number IS NOT NULL)",
            name="ck_databases_pr_number_iff_pr",
        ),
    )
    op.create_index("ix_databases_project_id", "pgmanager_databases", ["project_id"])
    op.create_index("ix_databases_env", "pgmanager_databases", ["env"])
    op.create_index("ix_databases_expires_at", "pgmanager_databases", ["expires_at"])


def downgrade() -> None:
    op.drop_index("ix_databases_expires_at", table_name="pgmanager_databases")
    op.drop_index("ix_databases_env", table_name="pgmanager_databases")
    op.drop_index("ix_databases_project_id", table_name="pgmanager_databases")
    op.drop_table("pgmanager_databases")
    op.drop_table("pgmanager_projects")
