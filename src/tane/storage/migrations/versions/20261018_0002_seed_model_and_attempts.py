"""Add requested model and per-attempt bookkeeping to seeds."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261018_0002"
down_revision = "20261018_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("seeds", sa.Column("model", sa.String(), nullable=True))
    op.add_column(
        "seeds",
        sa.Column("attempt", sa.Integer(), nullable=False, server_default="0"),
    )
    op.add_column("seeds", sa.Column("started_at", sa.DateTime(timezone=True), nullable=True))
    op.add_column("seeds", sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True))
    op.add_column("seeds", sa.Column("failure_class", sa.String(), nullable=True))
    op.add_column("seeds", sa.Column("error_summary", sa.Text(), nullable=True))
    op.add_column("seeds", sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True))
    op.execute(
        sa.text(
            """
            UPDATE seeds
            SET updated_at = COALESCE(updated_at, created_at, CURRENT_TIMESTAMP)
            """,
        ),
    )
    with op.batch_alter_table("seeds") as batch_op:
        batch_op.alter_column(
            "updated_at",
            existing_type=sa.DateTime(timezone=True),
            nullable=False,
        )
    op.create_index("ix_seeds_failure_class", "seeds", ["failure_class"])


def downgrade() -> None:
    op.drop_index("ix_seeds_failure_class", table_name="seeds")
    with op.batch_alter_table("seeds") as batch_op:
        batch_op.drop_column("updated_at")
        batch_op.drop_column("error_summary")
        batch_op.drop_column("failure_class")
        batch_op.drop_column("finished_at")
        batch_op.drop_column("started_at")
        batch_op.drop_column("attempt")
        batch_op.drop_column("model")
