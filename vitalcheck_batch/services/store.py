"""
RunStore -- Typed data access for the run engine.

Contract:
    Every mutating method runs in its own short transaction (commit on
    success, rollback and re-raise on error), so progress is durable the
    moment a method returns.  Reads return frozen DTOs, never ORM rows.

Architecture: vitalcheck_batch/services.  Imports from vitalcheck_batch.models,
    vitalcheck_batch.domain and vitalcheck_kernel.db.

Invariants enforced:
    - ``set_phase`` updates RunState, the LogRun's last phase and appends a
      LogDetail in ONE transaction.
    - ``replace_subjects`` and ``replace_schedule_windows`` delete and
      bulk-insert in ONE transaction (no partial replacement).
"""

from __future__ import annotations

from datetime import date
from typing import Callable, Iterable

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.orm import Session

from vitalcheck_config.schema import ScheduleWindowDef
from vitalcheck_kernel.db.engine import session_scope
from vitalcheck_kernel.domain.clock import Clock, SystemClock
from vitalcheck_kernel.exceptions import RunStateNotFoundError
from vitalcheck_kernel.logging_config import get_logger

from vitalcheck_batch.domain.status import status_from_code
from vitalcheck_batch.domain.types import (
    CheckStatus,
    LogDetailSummary,
    LogRunSummary,
    RunPhase,
    RunStateSnapshot,
    ScheduleWindow,
    SubjectRow,
    SubjectStatus,
)
from vitalcheck_batch.models.credential import CredentialTokenModel
from vitalcheck_batch.models.run import LogDetailModel, LogRunModel, RunStateModel
from vitalcheck_batch.models.schedule import ScheduleWindowModel
from vitalcheck_batch.models.subject import SubjectModel
from vitalcheck_services.types import CensusRecord

logger = get_logger("batch.store")

ACTIVE_TOKEN_STATUSES = ("ACTIVE", "ACTIVED")

_PENDING = CheckStatus.PENDING.value


class RunStore:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    def _scope(self):
        return session_scope(self._session_factory)

    # -------------------------------------------------------------------------
    # Run state
    # -------------------------------------------------------------------------

    def get_state(self) -> RunStateSnapshot | None:
        with self._scope() as session:
            row = session.execute(
                select(RunStateModel).order_by(RunStateModel.id).limit(1)
            ).scalar_one_or_none()
            return row.to_dto() if row is not None else None

    def ensure_state(self) -> RunStateSnapshot:
        """Seed the singleton run state at phase 0 if it does not exist."""
        with self._scope() as session:
            row = session.execute(
                select(RunStateModel).order_by(RunStateModel.id).limit(1)
            ).scalar_one_or_none()
            if row is None:
                row = RunStateModel(phase=int(RunPhase.IDLE), log_id=None)
                session.add(row)
                session.flush()
                logger.info("run_state_seeded")
            return row.to_dto()

    def start_log_run(self) -> int:
        """Create the LogRun for a new attempt and return its id."""
        with self._scope() as session:
            log_run = LogRunModel(phase=None, started_at=self._clock.now())
            session.add(log_run)
            session.flush()
            logger.info("log_run_created", extra={"log_run_id": log_run.id})
            return log_run.id

    def set_phase(
        self,
        log_id: int,
        phase: RunPhase,
        row_count: int | None = None,
    ) -> int:
        """Persist a phase transition and return the new LogDetail id.

        Raises:
            RunStateNotFoundError: If the singleton run_state row is missing.
        """
        with self._scope() as session:
            state = session.execute(
                select(RunStateModel).order_by(RunStateModel.id).limit(1)
            ).scalar_one_or_none()
            if state is None:
                raise RunStateNotFoundError()

            session.execute(
                update(LogRunModel)
                .where(LogRunModel.id == log_id)
                .values(phase=int(phase))
            )
            state.phase = int(phase)
            state.log_id = log_id

            detail = LogDetailModel(
                log_id=log_id,
                phase=int(phase),
                row_count=row_count,
                checked_rows=0,
            )
            session.add(detail)
            session.flush()
            return detail.id

    def mark_log_error(self, log_id: int, summary: str) -> None:
        with self._scope() as session:
            session.execute(
                update(LogRunModel)
                .where(LogRunModel.id == log_id)
                .values(error_summary=summary[:4000])
            )

    def complete_log_run(self, log_id: int) -> None:
        with self._scope() as session:
            session.execute(
                update(LogRunModel)
                .where(LogRunModel.id == log_id)
                .values(completed_at=self._clock.now())
            )

    @staticmethod
    def _increment(session: Session, detail_id: int | None) -> None:
        if detail_id is None:
            return
        session.execute(
            update(LogDetailModel)
            .where(LogDetailModel.id == detail_id)
            .values(checked_rows=LogDetailModel.checked_rows + 1)
        )

    # -------------------------------------------------------------------------
    # Log queries
    # -------------------------------------------------------------------------

    def list_log_runs(self, limit: int | None = None) -> list[LogRunSummary]:
        """All LogRuns, newest first."""
        with self._scope() as session:
            stmt = select(LogRunModel).order_by(LogRunModel.id.desc())
            if limit is not None:
                stmt = stmt.limit(limit)
            return [m.to_dto() for m in session.execute(stmt).scalars()]

    def get_log_run(self, log_id: int) -> LogRunSummary | None:
        with self._scope() as session:
            model = session.get(LogRunModel, log_id)
            return model.to_dto() if model is not None else None

    def list_log_details(self, log_id: int) -> list[LogDetailSummary]:
        with self._scope() as session:
            models = session.execute(
                select(LogDetailModel)
                .where(LogDetailModel.log_id == log_id)
                .order_by(LogDetailModel.id)
            ).scalars()
            return [m.to_dto() for m in models]

    # -------------------------------------------------------------------------
    # Subjects
    # -------------------------------------------------------------------------

    def replace_subjects(self, records: Iterable[CensusRecord]) -> int:
        """Replace the whole subject table with census records.

        Subjects without a birth date cannot be asked of the population
        registry and are marked ineligible (``x``) for that check only.
        """
        rows = [
            {
                "cid": r.cid,
                "birth_date": r.birth_date,
                "member_code": r.member_code,
                "status": SubjectStatus.PENDING.value,
                "status_checkpop": (
                    _PENDING if r.birth_date else CheckStatus.INELIGIBLE.value
                ),
                "status_lk": _PENDING,
            }
            for r in records
        ]
        with self._scope() as session:
            session.execute(delete(SubjectModel))
            if rows:
                session.execute(insert(SubjectModel), rows)
        logger.info("subjects_replaced", extra={"rows": len(rows)})
        return len(rows)

    def list_subjects(self) -> list[SubjectRow]:
        with self._scope() as session:
            models = session.execute(select(SubjectModel).order_by(SubjectModel.id)).scalars()
            return [m.to_dto() for m in models]

    def get_subject(self, subject_id: int) -> SubjectRow | None:
        with self._scope() as session:
            model = session.get(SubjectModel, subject_id)
            return model.to_dto() if model is not None else None

    def population_pending(self) -> list[SubjectRow]:
        with self._scope() as session:
            models = session.execute(
                select(SubjectModel)
                .where(SubjectModel.status == SubjectStatus.PENDING.value)
                .where(SubjectModel.status_checkpop == _PENDING)
                .order_by(SubjectModel.id)
            ).scalars()
            return [m.to_dto() for m in models]

    def count_population_pending(self) -> int:
        with self._scope() as session:
            return session.execute(
                select(func.count(SubjectModel.id))
                .where(SubjectModel.status_checkpop == _PENDING)
            ).scalar_one()

    def civil_pending(self) -> list[SubjectRow]:
        with self._scope() as session:
            models = session.execute(
                select(SubjectModel)
                .where(SubjectModel.status == SubjectStatus.PENDING.value)
                .where(SubjectModel.status_lk == _PENDING)
                .order_by(SubjectModel.id)
            ).scalars()
            return [m.to_dto() for m in models]

    def count_civil_pending(self) -> int:
        with self._scope() as session:
            return session.execute(
                select(func.count(SubjectModel.id))
                .where(SubjectModel.status == SubjectStatus.PENDING.value)
                .where(SubjectModel.status_lk == _PENDING)
            ).scalar_one()

    def record_population_result(
        self,
        subject_id: int,
        code: str,
        detail_id: int | None = None,
    ) -> None:
        with self._scope() as session:
            self._increment(session, detail_id)
            session.execute(
                update(SubjectModel)
                .where(SubjectModel.id == subject_id)
                .values(
                    status_checkpop=code,
                    status=status_from_code(code).value,
                )
            )

    def record_population_failure(self, subject_id: int) -> None:
        with self._scope() as session:
            session.execute(
                update(SubjectModel)
                .where(SubjectModel.id == subject_id)
                .values(status_checkpop=CheckStatus.FAILED.value)
            )

    def record_civil_result(
        self,
        subject_id: int,
        status_code: str | None,
        birth_date: date | None = None,
        detail_id: int | None = None,
    ) -> None:
        values: dict = {
            "status_lk": status_code if status_code is not None else _PENDING,
            "status": status_from_code(status_code).value,
        }
        if birth_date is not None:
            values["birth_date"] = birth_date
        with self._scope() as session:
            self._increment(session, detail_id)
            session.execute(
                update(SubjectModel).where(SubjectModel.id == subject_id).values(**values)
            )

    def record_civil_failure(self, subject_id: int) -> None:
        with self._scope() as session:
            session.execute(
                update(SubjectModel)
                .where(SubjectModel.id == subject_id)
                .values(status_lk=CheckStatus.FAILED.value)
            )

    # -------------------------------------------------------------------------
    # Schedule windows
    # -------------------------------------------------------------------------

    def list_schedule_windows(self) -> list[ScheduleWindow]:
        with self._scope() as session:
            models = session.execute(
                select(ScheduleWindowModel).order_by(ScheduleWindowModel.id)
            ).scalars()
            return [m.to_dto() for m in models]

    def replace_schedule_windows(self, windows: Iterable[ScheduleWindowDef]) -> int:
        """Replace all windows with validated ``ScheduleWindowDef`` values."""
        rows = [
            {
                "day": w.day,
                "month": w.month,
                "start_time": w.start_time,
                "duration_hours": w.duration_hours,
            }
            for w in windows
        ]
        with self._scope() as session:
            session.execute(delete(ScheduleWindowModel))
            if rows:
                session.execute(insert(ScheduleWindowModel), rows)
        logger.info("schedule_windows_replaced", extra={"windows": len(rows)})
        return len(rows)

    # -------------------------------------------------------------------------
    # Credential tokens
    # -------------------------------------------------------------------------

    def get_active_token(self) -> str | None:
        """Most recently updated ACTIVE (or ACTIVED) token, if any."""
        with self._scope() as session:
            return session.execute(
                select(CredentialTokenModel.token)
                .where(CredentialTokenModel.status.in_(ACTIVE_TOKEN_STATUSES))
                .order_by(
                    CredentialTokenModel.updated_at.desc(),
                    CredentialTokenModel.id.desc(),
                )
                .limit(1)
            ).scalar_one_or_none()

    def upsert_credential_token(
        self,
        subject_id: str,
        token: str,
        status: str = "ACTIVE",
    ) -> None:
        now = self._clock.now()
        with self._scope() as session:
            model = session.execute(
                select(CredentialTokenModel)
                .where(CredentialTokenModel.subject_id == subject_id)
            ).scalar_one_or_none()
            if model is None:
                session.add(
                    CredentialTokenModel(
                        subject_id=subject_id,
                        token=token,
                        status=status,
                        created_at=now,
                        updated_at=now,
                    )
                )
            else:
                model.token = token
                model.status = status
                model.updated_at = now
        logger.info("credential_token_upserted", extra={"subject_id": subject_id, "status": status})
