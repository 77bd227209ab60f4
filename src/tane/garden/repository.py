"""Persistent seed/report store backed by SQLModel + SQLite."""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from pathlib import Path
from uuid import uuid4

from sqlalchemy import delete as sa_delete
from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from tane.garden.models import (
    FailureClass,
    PlantType,
    RepairSummary,
    ReportView,
    SeedCreate,
    SeedDetails,
    SeedStatus,
    SeedView,
)
from tane.storage.alembic_runner import upgrade_head
from tane.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from tane.storage.sqlmodel_models import Report, Seed

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50
ERROR_SUMMARY_MAX_CHARS = 2_000


class GardenRepository:
    """Seed and report persistence facade.

    Every write is a single-row statement committed on its own session,
    except delete and regenerate which remove the report and touch the seed
    in one commit. Status changes out of ``pending``/``processing`` are
    conditional updates, so concurrent callers cannot both win.
    """

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(
            db_path=db_path,
            busy_timeout_ms=sqlite_busy_timeout_ms,
        )

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    # -- seeds -----------------------------------------------------------------

    def plant_seed(self, payload: SeedCreate) -> SeedView:
        """Create a pending seed."""

        content = payload.content.strip()
        if not content:
            raise ValueError("Seed content must not be empty.")

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            row = Seed(
                id=payload.seed_id or str(uuid4()),
                content=content,
                status=SeedStatus.PENDING.value,
                model=(payload.model or "").strip() or None,
                plant_type=payload.plant_type.value,
                attempt=0,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_seed_view(row)

    def get_seed(self, seed_id: str) -> SeedView | None:
        """Return one seed or ``None`` when it does not exist."""

        with Session(self.engine) as session:
            row = session.get(Seed, seed_id)
            return _to_seed_view(row) if row is not None else None

    def get_seed_details(self, seed_id: str) -> SeedDetails | None:
        """Return seed with its report."""

        with Session(self.engine) as session:
            seed = session.get(Seed, seed_id)
            if seed is None:
                return None
            report = session.get(Report, seed_id)
            return SeedDetails(
                seed=_to_seed_view(seed),
                report=_to_report_view(report) if report is not None else None,
            )

    def list_seeds(
        self,
        *,
        status: SeedStatus | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[SeedView]:
        """List recent seeds, newest first."""

        with Session(self.engine) as session:
            statement = select(Seed)
            if status is not None:
                statement = statement.where(Seed.status == status.value)
            statement = statement.order_by(
                col(Seed.created_at).desc(),
                col(Seed.id).desc(),
            ).limit(limit)
            rows = session.exec(statement).all()
        return [_to_seed_view(row) for row in rows]

    def set_status(self, seed_id: str, status: SeedStatus) -> bool:
        """Unconditionally write a status. Writing the current status is a no-op."""

        with Session(self.engine) as session:
            row = session.get(Seed, seed_id)
            if row is None:
                return False
            if row.status == status.value:
                return True
            row.status = status.value
            row.updated_at = to_db_datetime(utc_now())
            session.add(row)
            session.commit()
            return True

    def transition_status(
        self,
        *,
        seed_id: str,
        expected: SeedStatus,
        target: SeedStatus,
    ) -> bool:
        """Move a seed from ``expected`` to ``target``; False if it was not ``expected``."""

        now = to_db_datetime(utc_now())
        values: dict[str, object] = {"status": target.value, "updated_at": now}
        if target == SeedStatus.PROCESSING:
            values.update(
                attempt=col(Seed.attempt) + 1,
                started_at=now,
                finished_at=None,
                failure_class=None,
                error_summary=None,
            )
        elif target.is_terminal:
            values["finished_at"] = now

        with Session(self.engine) as session:
            result = session.exec(
                sa_update(Seed)
                .where(
                    col(Seed.id) == seed_id,
                    col(Seed.status) == expected.value,
                )
                .values(**values),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def claim_seed(self, seed_id: str) -> SeedView | None:
        """Atomically move one pending seed to processing."""

        claimed = self.transition_status(
            seed_id=seed_id,
            expected=SeedStatus.PENDING,
            target=SeedStatus.PROCESSING,
        )
        if not claimed:
            return None
        return self.get_seed(seed_id)

    def claim_next_pending_seed(self) -> SeedView | None:
        """Atomically claim the oldest pending seed."""

        while True:
            with Session(self.engine) as session:
                candidate_id = session.exec(
                    select(Seed.id)
                    .where(Seed.status == SeedStatus.PENDING.value)
                    .order_by(col(Seed.created_at).asc())
                    .limit(1),
                ).one_or_none()
            if candidate_id is None:
                return None

            claimed = self.claim_seed(candidate_id)
            if claimed is not None:
                return claimed
            logger.debug("Seed %s was claimed concurrently, trying next candidate", candidate_id)

    def complete_seed(self, seed_id: str) -> bool:
        """Mark a processing seed as completed."""

        return self.transition_status(
            seed_id=seed_id,
            expected=SeedStatus.PROCESSING,
            target=SeedStatus.COMPLETED,
        )

    def fail_seed(
        self,
        seed_id: str,
        *,
        failure_class: FailureClass,
        error_summary: str,
    ) -> bool:
        """Mark a processing seed as failed and record why."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(Seed)
                .where(
                    col(Seed.id) == seed_id,
                    col(Seed.status) == SeedStatus.PROCESSING.value,
                )
                .values(
                    status=SeedStatus.FAILED.value,
                    failure_class=failure_class.value,
                    error_summary=error_summary[:ERROR_SUMMARY_MAX_CHARS],
                    finished_at=now,
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def delete_seed(self, seed_id: str) -> bool:
        """Delete a seed and its report. Returns False if the seed did not exist."""

        with Session(self.engine) as session:
            session.exec(sa_delete(Report).where(col(Report.seed_id) == seed_id))
            result = session.exec(sa_delete(Seed).where(col(Seed.id) == seed_id))
            session.commit()
            return result.rowcount == 1

    def reset_seed_for_regrowth(self, seed_id: str) -> SeedView:
        """Drop the report and send a finished seed back to the queue."""

        with Session(self.engine) as session:
            row = session.get(Seed, seed_id)
            if row is None:
                raise RuntimeError(f"Seed not found: {seed_id}")

            previous = SeedStatus(row.status)
            if previous == SeedStatus.PROCESSING:
                raise RuntimeError(
                    f"Seed {seed_id} is still growing; wait for it to finish before regenerating.",
                )

            session.exec(sa_delete(Report).where(col(Report.seed_id) == seed_id))
            result = session.exec(
                sa_update(Seed)
                .where(
                    col(Seed.id) == seed_id,
                    col(Seed.status) == previous.value,
                )
                .values(
                    status=SeedStatus.PENDING.value,
                    started_at=None,
                    finished_at=None,
                    failure_class=None,
                    error_summary=None,
                    updated_at=to_db_datetime(utc_now()),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                raise RuntimeError(
                    "Seed state changed concurrently while regenerating; "
                    f"please retry (seed_id={seed_id}).",
                )
            session.commit()
            session.refresh(row)
            return _to_seed_view(row)

    def recover_stale_processing_seeds(
        self,
        *,
        stale_after: timedelta,
        exclude: frozenset[str] = frozenset(),
    ) -> list[str]:
        """Send seeds stuck in processing for longer than ``stale_after`` back to pending."""

        cutoff = to_db_datetime(utc_now() - stale_after)
        recovered: list[str] = []
        with Session(self.engine) as session:
            candidates = session.exec(
                select(Seed.id).where(
                    Seed.status == SeedStatus.PROCESSING.value,
                    col(Seed.started_at) < cutoff,
                ),
            ).all()

        for seed_id in candidates:
            if seed_id in exclude:
                continue
            if self.transition_status(
                seed_id=seed_id,
                expected=SeedStatus.PROCESSING,
                target=SeedStatus.PENDING,
            ):
                recovered.append(seed_id)
        return recovered

    # -- reports ---------------------------------------------------------------

    def upsert_report(self, *, seed_id: str, content: str, logs: list[str]) -> ReportView:
        """Insert or replace the report for a seed."""

        if not content.strip():
            raise ValueError(f"Refusing to store an empty report for seed {seed_id}.")

        with Session(self.engine) as session:
            logs_json = json.dumps(logs, ensure_ascii=False)
            now = to_db_datetime(utc_now())
            row = session.get(Report, seed_id)
            if row is None:
                row = Report(seed_id=seed_id, content=content, logs=logs_json, updated_at=now)
            else:
                row.content = content
                row.logs = logs_json
                row.updated_at = now
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_report_view(row)

    def get_report(self, seed_id: str) -> ReportView | None:
        """Return the report for a seed, if any."""

        with Session(self.engine) as session:
            row = session.get(Report, seed_id)
            return _to_report_view(row) if row is not None else None

    # -- integrity -------------------------------------------------------------

    def repair_integrity(self) -> RepairSummary:
        """Requeue seeds whose report is empty or missing."""

        summary = RepairSummary()
        with Session(self.engine) as session:
            ghost_ids = session.exec(
                select(Report.seed_id).where(func.trim(col(Report.content)) == ""),
            ).all()
            for seed_id in ghost_ids:
                session.exec(sa_delete(Report).where(col(Report.seed_id) == seed_id))
                session.exec(
                    sa_update(Seed)
                    .where(col(Seed.id) == seed_id)
                    .values(
                        status=SeedStatus.PENDING.value,
                        updated_at=to_db_datetime(utc_now()),
                    ),
                )
                summary.ghost_reports.append(seed_id)

            reported = select(Report.seed_id)
            orphan_ids = session.exec(
                select(Seed.id).where(
                    Seed.status == SeedStatus.COMPLETED.value,
                    col(Seed.id).not_in(reported),
                ),
            ).all()
            for seed_id in orphan_ids:
                session.exec(
                    sa_update(Seed)
                    .where(col(Seed.id) == seed_id)
                    .values(
                        status=SeedStatus.PENDING.value,
                        updated_at=to_db_datetime(utc_now()),
                    ),
                )
                summary.orphan_seeds.append(seed_id)
            session.commit()

        for seed_id in summary.ghost_reports:
            logger.info("Reset seed %s: removed empty report", seed_id)
        for seed_id in summary.orphan_seeds:
            logger.info("Reset seed %s: completed without a report", seed_id)
        return summary


def _to_seed_view(row: Seed) -> SeedView:
    return SeedView(
        id=row.id,
        content=row.content,
        status=SeedStatus(row.status),
        model=row.model,
        plant_type=PlantType(row.plant_type),
        attempt=row.attempt,
        started_at=to_utc_aware_datetime(row.started_at) if row.started_at is not None else None,
        finished_at=(
            to_utc_aware_datetime(row.finished_at) if row.finished_at is not None else None
        ),
        failure_class=FailureClass(row.failure_class) if row.failure_class is not None else None,
        error_summary=row.error_summary,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )


def _to_report_view(row: Report) -> ReportView:
    logs: list[str] = []
    if row.logs:
        parsed = json.loads(row.logs)
        if isinstance(parsed, list):
            logs = [str(item) for item in parsed]
    return ReportView(
        seed_id=row.seed_id,
        content=row.content,
        logs=logs,
        updated_at=to_utc_aware_datetime(row.updated_at),
    )
