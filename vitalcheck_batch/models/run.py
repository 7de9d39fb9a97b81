"""
ORM models for run progress: the singleton run state and the run log.

Contract:
    RunStateModel holds the one persisted phase; LogRunModel is one row per
    batch attempt; LogDetailModel is one row per phase transition.  Each has
    ``to_dto()``.

Architecture: vitalcheck_batch/models. Imports from vitalcheck_kernel.db.base only.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from vitalcheck_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from vitalcheck_batch.domain.types import (
        LogDetailSummary,
        LogRunSummary,
        RunStateSnapshot,
    )


class RunStateModel(TrackedBase):
    """Singleton record of the current phase (seeded at phase 0 by init-db)."""

    __tablename__ = "run_state"

    phase: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    log_id: Mapped[int | None] = mapped_column(
        ForeignKey("log_runs.id"), nullable=True,
    )

    def to_dto(self) -> RunStateSnapshot:
        from vitalcheck_batch.domain.types import RunStateSnapshot

        return RunStateSnapshot(phase=self.phase, log_id=self.log_id)


class LogRunModel(TrackedBase):
    """One batch attempt, reused while the attempt is resumed."""

    __tablename__ = "log_runs"

    phase: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def to_dto(self) -> LogRunSummary:
        from vitalcheck_batch.domain.types import LogRunSummary, phase_name

        return LogRunSummary(
            id=self.id,
            phase=self.phase,
            phase_name=phase_name(self.phase),
            error_summary=self.error_summary,
            started_at=self.started_at,
            completed_at=self.completed_at,
        )


class LogDetailModel(TrackedBase):
    """One phase transition within a LogRun; never deleted."""

    __tablename__ = "log_details"

    __table_args__ = (
        Index("ix_log_details_log_id", "log_id"),
    )

    log_id: Mapped[int] = mapped_column(
        ForeignKey("log_runs.id", ondelete="CASCADE"), nullable=False,
    )
    phase: Mapped[int] = mapped_column(Integer, nullable=False)
    row_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    checked_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def to_dto(self) -> LogDetailSummary:
        from vitalcheck_batch.domain.types import LogDetailSummary, phase_name

        return LogDetailSummary(
            id=self.id,
            log_id=self.log_id,
            phase=self.phase,
            phase_name=phase_name(self.phase),
            row_count=self.row_count,
            checked_rows=self.checked_rows or 0,
            created_at=self.created_at,
        )
