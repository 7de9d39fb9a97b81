"""
Retry engine -- bounded per-row retry, per-row rounds and verify-until-done.

Contract:
    ``retry_call``        one operation, fixed attempts and fixed backoff
                          (tenacity ``Retrying``).
    ``process_rows``      one pass over rows; a row's failure never aborts
                          the pass, a cancellation always does.
    ``retry_until_done``  repeat passes until nothing is pending or the round
                          budget is spent.

Cancellation is always reported distinctly from failure: a CANCELLED
outcome or a ``stopped`` result means "the window closed, state is
consistent", never "something broke".

All waiting goes through the injected Clock via ``CancellationToken.sleep``
so the window predicate is re-checked at every sleep step.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Sequence, TypeVar

import requests
from tenacity import (
    Future,
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from vitalcheck_config.schema import RetrySettings
from vitalcheck_kernel.domain.clock import Clock
from vitalcheck_kernel.exceptions import AdapterError, RunCancelled
from vitalcheck_kernel.logging_config import get_logger

from vitalcheck_batch.domain.cancellation import CancellationToken
from vitalcheck_batch.domain.types import (
    ConvergenceResult,
    RetryOutcome,
    RetryStatus,
    RoundResult,
)
from vitalcheck_services.types import Cancelled, Resolved, TransportFailure

logger = get_logger("batch.retry")

R = TypeVar("R")

# Failures of one external call.  Anything else raised by an operation is a
# fault of the run itself and is not retried.
RETRYABLE_ERRORS = (AdapterError, requests.RequestException)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry, round and polling budgets for one run."""

    max_attempts: int = 3
    delay_seconds: float = 60.0
    max_rounds: int = 5
    population_round_delay_seconds: float = 0.0
    civil_round_delay_seconds: float = 60.0
    login_poll_seconds: float = 3.0
    sleep_step_seconds: float = 1.0

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> RetryPolicy:
        return cls(
            max_attempts=settings.max_attempts,
            delay_seconds=settings.delay_seconds,
            max_rounds=settings.max_rounds,
            population_round_delay_seconds=settings.population_round_delay_seconds,
            civil_round_delay_seconds=settings.civil_round_delay_seconds,
            login_poll_seconds=settings.login_poll_seconds,
        )


# =============================================================================
# Bounded retry
# =============================================================================


def retry_call(
    operation: Callable[[], Any],
    *,
    max_attempts: int,
    delay_seconds: float,
    token: CancellationToken,
    clock: Clock,
    sleep_step: float = 1.0,
    label: str = "",
) -> RetryOutcome:
    """Invoke ``operation`` up to ``max_attempts`` times.

    The operation reports:
        - success by returning ``Resolved(payload)`` (any other plain value
          is also taken as the payload);
        - an attempt failure by returning ``TransportFailure`` or raising one
          of ``RETRYABLE_ERRORS``;
        - cancellation by returning ``Cancelled`` or raising ``RunCancelled``.

    Any other exception (data access included) is not an attempt failure and
    propagates.  The delay is only slept between attempts, never after the
    last one, and the sleep is interrupted when the window closes.
    """
    attempts = 0
    last_error: Any = None

    def attempt() -> Any:
        nonlocal attempts
        token.check(label)
        attempts += 1
        return operation()

    def log_failed_attempt(retry_state: RetryCallState) -> None:
        nonlocal last_error
        last_error = _attempt_error(retry_state.outcome)
        extra = {
            "task": label or "RETRY",
            "color": "orange",
            "attempt": retry_state.attempt_number,
            "max_attempts": max_attempts,
        }
        if isinstance(last_error, TransportFailure):
            extra.update(error=last_error.reason, status_code=last_error.status_code)
        else:
            extra.update(error=str(last_error))
        logger.warning("retry_attempt_failed", extra=extra)

    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(delay_seconds),
        retry=retry_if_exception_type(RETRYABLE_ERRORS) | retry_if_result(_is_transport_failure),
        sleep=lambda seconds: token.sleep(clock, seconds, step=sleep_step, where=label),
        after=log_failed_attempt,
        retry_error_callback=lambda retry_state: _Exhausted(_attempt_error(retry_state.outcome)),
    )

    try:
        result = retrying(attempt)
    except RunCancelled:
        return RetryOutcome(RetryStatus.CANCELLED, error=last_error, attempts=attempts)

    if isinstance(result, _Exhausted):
        return RetryOutcome(RetryStatus.FAILED, error=result.error, attempts=attempts)
    if isinstance(result, Cancelled):
        return RetryOutcome(RetryStatus.CANCELLED, error=last_error, attempts=attempts)
    value = result.payload if isinstance(result, Resolved) else result
    return RetryOutcome(RetryStatus.SUCCEEDED, value=value, attempts=attempts)


@dataclass(frozen=True)
class _Exhausted:
    error: Any


def _is_transport_failure(result: Any) -> bool:
    return isinstance(result, TransportFailure)


def _attempt_error(outcome: Future) -> Any:
    """The raised exception or the returned TransportFailure of one attempt."""
    if outcome.failed:
        return outcome.exception()
    return outcome.result()


# =============================================================================
# One round over rows
# =============================================================================


def process_rows(
    rows: Sequence[R],
    runner: Callable[[R], RetryOutcome],
    on_success: Callable[[R, Any], None],
    on_failure: Callable[[R, Any], None],
    token: CancellationToken,
) -> RoundResult:
    """Run ``runner`` for each row and persist each outcome as it resolves.

    A value resolved before the predicate flipped is persisted before the
    round stops.  Errors raised by ``on_success``/``on_failure`` (data
    access) propagate.
    """
    processed = succeeded = failed = 0

    for row in rows:
        if token.cancelled:
            return RoundResult(processed, succeeded, failed, stopped=True)

        outcome = runner(row)
        if outcome.cancelled:
            return RoundResult(processed, succeeded, failed, stopped=True)

        processed += 1
        if outcome.succeeded:
            on_success(row, outcome.value)
            succeeded += 1
        else:
            on_failure(row, outcome.error)
            failed += 1

        if token.cancelled:
            return RoundResult(processed, succeeded, failed, stopped=True)

    return RoundResult(processed, succeeded, failed, stopped=False)


# =============================================================================
# Verify until done
# =============================================================================


def retry_until_done(
    count_pending: Callable[[], int],
    run_round: Callable[[], RoundResult],
    *,
    max_rounds: int,
    round_delay_seconds: float,
    token: CancellationToken,
    clock: Clock,
    sleep_step: float = 1.0,
    label: str = "",
) -> ConvergenceResult:
    """Repeat rounds until ``count_pending()`` is zero or rounds run out.

    The pending count is re-queried once after the final round so that a
    last round which resolves everything still converges.
    """
    results: list[RoundResult] = []
    pending = 0

    for round_index in range(max_rounds):
        if token.cancelled:
            return _stopped(results, pending)

        pending = count_pending()
        if pending <= 0:
            return ConvergenceResult(
                converged=True, stopped=False, rounds=len(results),
                pending=0, round_results=tuple(results),
            )

        if round_index > 0 and round_delay_seconds > 0:
            try:
                token.sleep(clock, round_delay_seconds, step=sleep_step, where=label)
            except RunCancelled:
                return _stopped(results, pending)

        if token.cancelled:
            return _stopped(results, pending)

        logger.info(
            "round_started",
            extra={"task": label or "RETRY", "round": round_index + 1, "pending": pending},
        )
        result = run_round()
        results.append(result)
        logger.info(
            "round_finished",
            extra={
                "task": label or "RETRY",
                "round": round_index + 1,
                "succeeded": result.succeeded,
                "failed": result.failed,
                "stopped": result.stopped,
            },
        )
        if result.stopped:
            return _stopped(results, pending)

    pending = count_pending()
    return ConvergenceResult(
        converged=pending <= 0,
        stopped=False,
        rounds=len(results),
        pending=max(pending, 0),
        round_results=tuple(results),
    )


def _stopped(results: list[RoundResult], pending: int) -> ConvergenceResult:
    return ConvergenceResult(
        converged=False, stopped=True, rounds=len(results),
        pending=pending, round_results=tuple(results),
    )
