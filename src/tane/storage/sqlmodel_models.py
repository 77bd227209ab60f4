"""SQLModel ORM tables for the garden."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Text
from sqlmodel import Field, SQLModel

SEED_STATUSES = ("pending", "processing", "completed", "failed")
PLANT_TYPES = ("pine", "sakura", "bamboo", "fern", "oak")


def _in_clause(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


class Seed(SQLModel, table=True):
    __tablename__ = "seeds"  # type: ignore[bad-override]
    __table_args__ = (
        CheckConstraint(_in_clause("status", SEED_STATUSES), name="ck_seeds_status"),
        CheckConstraint(_in_clause("plant_type", PLANT_TYPES), name="ck_seeds_plant_type"),
        Index("idx_seeds_status_created", "status", "created_at"),
    )

    id: str = Field(primary_key=True)
    content: str = Field(sa_column=Column(Text, nullable=False))
    status: str = Field(index=True)
    model: str | None = None
    plant_type: str = Field(default="pine")
    attempt: int = Field(default=0)
    started_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    finished_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    failure_class: str | None = Field(default=None, index=True)
    error_summary: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Report(SQLModel, table=True):
    __tablename__ = "reports"  # type: ignore[bad-override]

    seed_id: str = Field(
        sa_column=Column(
            ForeignKey("seeds.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )
    content: str = Field(sa_column=Column(Text, nullable=False))
    logs: str | None = Field(default=None, sa_column=Column(Text))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
