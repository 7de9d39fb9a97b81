"""
vitalcheck_batch.domain -- Pure types and evaluation for the run engine.

ZERO I/O (the cancellation token sleeps only through an injected Clock).
"""

from vitalcheck_batch.domain.types import (
    CheckStatus,
    ConvergenceResult,
    LogDetailSummary,
    LogRunSummary,
    PhaseOutcome,
    PhaseStatus,
    ProcessResult,
    RetryOutcome,
    RetryStatus,
    RoundResult,
    RunPhase,
    RunStateSnapshot,
    RunStatusReport,
    ScheduleWindow,
    SubjectRow,
    SubjectStatus,
)

__all__ = [
    "CheckStatus",
    "ConvergenceResult",
    "LogDetailSummary",
    "LogRunSummary",
    "PhaseOutcome",
    "PhaseStatus",
    "ProcessResult",
    "RetryOutcome",
    "RetryStatus",
    "RoundResult",
    "RunPhase",
    "RunStateSnapshot",
    "RunStatusReport",
    "ScheduleWindow",
    "SubjectRow",
    "SubjectStatus",
]
