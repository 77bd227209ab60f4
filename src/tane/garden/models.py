"""Domain models for seeds, reports and gardener outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class SeedStatus(str, Enum):
    """Seed lifecycle states."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {SeedStatus.COMPLETED, SeedStatus.FAILED}


class PlantType(str, Enum):
    """Visual flavor assigned to a seed from its idea text."""

    PINE = "pine"
    SAKURA = "sakura"
    BAMBOO = "bamboo"
    FERN = "fern"
    OAK = "oak"


class FailureClass(str, Enum):
    """Normalized failure classes recorded on failed seeds."""

    CONFIGURATION = "configuration"
    ACCESS_OR_AUTH = "access_or_auth"
    BILLING_OR_QUOTA = "billing_or_quota"
    MODEL_NOT_AVAILABLE = "model_not_available"
    PROVIDER_TRANSIENT = "provider_transient"
    PROVIDER_ERROR = "provider_error"
    OUTPUT_EMPTY = "output_empty"


@dataclass(slots=True)
class SeedView:
    """Readable seed view for the gardener, CLI and web layer."""

    id: str
    content: str
    status: SeedStatus
    model: str | None
    plant_type: PlantType
    attempt: int
    started_at: datetime | None
    finished_at: datetime | None
    failure_class: FailureClass | None
    error_summary: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class ReportView:
    """Research artifact stored for one seed."""

    seed_id: str
    content: str
    logs: list[str]
    updated_at: datetime


@dataclass(slots=True)
class SeedDetails:
    """Seed together with its report, if one exists."""

    seed: SeedView
    report: ReportView | None


@dataclass(slots=True)
class RepairSummary:
    """Counters reported by the integrity repair pass."""

    ghost_reports: list[str] = field(default_factory=list)
    orphan_seeds: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.ghost_reports) + len(self.orphan_seeds)


@dataclass(slots=True)
class GrowOutcome:
    """Result of one gardener attempt."""

    seed_id: str
    status: SeedStatus
    model_id: str | None = None
    failure_class: FailureClass | None = None
    error_summary: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == SeedStatus.COMPLETED


@dataclass(slots=True)
class SeedCreate:
    """Input payload for planting a seed."""

    content: str
    model: str | None = None
    plant_type: PlantType = PlantType.PINE
    seed_id: str | None = None
