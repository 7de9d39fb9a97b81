"""
vitalcheck_batch.domain.types -- Pure frozen dataclasses for the run engine.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections; ORM rows convert to these via ``to_dto()``.

Invariants enforced:
    - Phase codes are a fixed integer contract with the persisted run_state.
    - ProcessResult has exactly five shapes (see the factory classmethods).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum, IntEnum
from typing import Any


# =============================================================================
# Enums
# =============================================================================


class RunPhase(IntEnum):
    """Persisted phase codes of the run state machine."""

    IDLE = 0
    PULLING = 1
    PULLED = 2
    CHECKING_POPULATION = 3
    POPULATION_CHECKED = 4
    AWAITING_LOGIN = 5
    CHECKING_CIVIL_REGISTRY = 6
    CIVIL_REGISTRY_CHECKED = 7
    DONE = 8

    @property
    def label(self) -> str:
        return self.name.lower()


def phase_name(code: int | None) -> str | None:
    """Human-readable name for a stored phase code (``unknown_<n>`` if foreign)."""
    if code is None:
        return None
    try:
        return RunPhase(code).label
    except ValueError:
        return f"unknown_{code}"


class SubjectStatus(str, Enum):
    """Overall vital status of a subject."""

    PENDING = "PENDING"
    ALIVE = "ALIVE"
    DEATH = "DEATH"
    LOST = "LOST"
    FAILED = "FAILED"


class CheckStatus(str, Enum):
    """Non-code values of the per-check columns.

    Resolved checks store the raw registry code ("0", "1", "2", ...)
    instead of one of these.
    """

    PENDING = "PENDING"
    FAILED = "FAILED"
    INELIGIBLE = "x"  # no birth date, population check cannot be asked


class PhaseStatus(str, Enum):
    """What happened when a phase function ran."""

    ADVANCED = "advanced"  # work done, phase moved forward
    SKIPPED = "skipped"  # precondition phase did not match (passthrough)
    STOPPED = "stopped"  # cancellation predicate tripped
    FAILED = "failed"  # error or round budget exhausted


class RetryStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


# =============================================================================
# Persisted-row views
# =============================================================================


@dataclass(frozen=True)
class RunStateSnapshot:
    phase: int
    log_id: int | None = None

    @property
    def phase_name(self) -> str | None:
        return phase_name(self.phase)


@dataclass(frozen=True)
class SubjectRow:
    """Immutable view of one subject record."""

    id: int
    cid: str
    birth_date: date | None
    member_code: str | None
    status: SubjectStatus
    status_checkpop: str
    status_lk: str


@dataclass(frozen=True)
class ScheduleWindow:
    """Stored schedule window row, before normalization."""

    id: int | None
    day: int
    month: int
    start_time: str  # "HH:MM:SS"
    duration_hours: int


@dataclass(frozen=True)
class LogDetailSummary:
    id: int
    log_id: int
    phase: int
    phase_name: str | None
    row_count: int | None = None
    checked_rows: int = 0
    created_at: datetime | None = None


@dataclass(frozen=True)
class LogRunSummary:
    id: int
    phase: int | None
    phase_name: str | None
    error_summary: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class RunStatusReport:
    """Current run status, as shown by ``vitalcheck status``."""

    is_processing: bool
    phase: int | None
    phase_name: str | None
    log_id: int | None
    details: tuple[LogDetailSummary, ...] = ()


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class ProcessResult:
    """Tagged outcome of ``RunExecutor.run_process``."""

    ok: bool
    state: str
    code: int

    @classmethod
    def already_running(cls) -> ProcessResult:
        return cls(ok=True, state="Processing already running.", code=200)

    @classmethod
    def stopped(cls) -> ProcessResult:
        return cls(ok=True, state="Stopped by schedule window.", code=200)

    @classmethod
    def no_state(cls) -> ProcessResult:
        return cls(ok=True, state="No state found.", code=200)

    @classmethod
    def done(cls) -> ProcessResult:
        return cls(ok=True, state="Processing done.", code=200)

    @classmethod
    def error(cls) -> ProcessResult:
        return cls(ok=False, state="Processing error.", code=500)

    def to_dict(self) -> dict[str, Any]:
        return {"ok": self.ok, "state": self.state, "code": self.code}


@dataclass(frozen=True)
class PhaseOutcome:
    """Result of one phase function: the phase to continue from and why."""

    phase: RunPhase
    status: PhaseStatus
    error: str | None = None

    @property
    def stopped(self) -> bool:
        return self.status == PhaseStatus.STOPPED

    @property
    def failed(self) -> bool:
        return self.status == PhaseStatus.FAILED


@dataclass(frozen=True)
class RetryOutcome:
    """Result of a bounded retry of one operation."""

    status: RetryStatus
    value: Any = None
    error: Any = None
    attempts: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == RetryStatus.SUCCEEDED

    @property
    def cancelled(self) -> bool:
        return self.status == RetryStatus.CANCELLED


@dataclass(frozen=True)
class RoundResult:
    """Result of one pass over the pending rows of a check."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    stopped: bool = False


@dataclass(frozen=True)
class ConvergenceResult:
    """Result of verify-until-done."""

    converged: bool
    stopped: bool
    rounds: int
    pending: int
    round_results: tuple[RoundResult, ...] = field(default=())
