"""Institutions

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 00:00:00.000000

"""
from __future__ import annotations

from typing import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Add institutions and point tenders.institution_id at them."""
    op.create_table(
        "institutions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=500), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    # Ids assigned before this revision pointed at nothing
    op.execute("UPDATE tenders SET institution_id = NULL")

    # SQLite cannot add a constraint in place; batch mode rebuilds the table
    with op.batch_alter_table("tenders") as batch_op:
        batch_op.create_index("ix_tenders_institution_id", ["institution_id"])
        batch_op.create_foreign_key(
            "fk_tenders_institution_id",
            "institutions",
            ["institution_id"],
            ["id"],
            ondelete="SET NULL",
        )


def downgrade() -> None:
    """Drop institutions; tenders keep a bare institution_id column."""
    with op.batch_alter_table("tenders") as batch_op:
        batch_op.drop_constraint("fk_tenders_institution_id", type_="foreignkey")
        batch_op.drop_index("ix_tenders_institution_id")

    op.drop_table("institutions")
