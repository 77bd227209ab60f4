"""Initial garden schema: seeds and their reports."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "seeds",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("plant_type", sa.String(), nullable=False, server_default="pine"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_seeds_status",
        ),
        sa.CheckConstraint(
            "plant_type IN ('pine', 'sakura', 'bamboo', 'fern', 'oak')",
            name="ck_seeds_plant_type",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_seeds_status", "seeds", ["status"])
    op.create_index("idx_seeds_status_created", "seeds", ["status", "created_at"])

    op.create_table(
        "reports",
        sa.Column("seed_id", sa.String(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("logs", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["seed_id"], ["seeds.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("seed_id"),
    )


def downgrade() -> None:
    op.drop_table("reports")
    op.drop_index("idx_seeds_status_created", table_name="seeds")
    op.drop_index("ix_seeds_status", table_name="seeds")
    op.drop_table("seeds")
