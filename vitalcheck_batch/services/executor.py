"""
RunExecutor -- the resumable run state machine.

Contract:
    ``run_process()`` drives one run from the persisted phase to DONE:
    pull census -> population check -> await login -> civil-registry check
    -> finish.  Manual and scheduled triggers share this entry point; a
    scheduled trigger passes the live window predicate.

Architecture: vitalcheck_batch/services.  Imports from vitalcheck_batch.domain,
    vitalcheck_batch.tasks, vitalcheck_batch.services (store, retry, lease)
    and vitalcheck_services.

Invariants enforced:
    - At most one run in flight per process (RunLease).
    - Every step reads the phase it was handed and is a passthrough unless
      that phase matches its precondition, so a restart resumes exactly.
    - A phase is persisted as in-progress before its work starts and is
      advanced only on verified completion.
    - Cancellation reports "stopped", never "failed", and never marks the
      LogRun as errored.
    - Per-row outcomes are persisted as they resolve; a stop or failure
      never undoes them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from vitalcheck_kernel.domain.clock import Clock, SystemClock
from vitalcheck_kernel.exceptions import (
    ConvergenceError,
    PhaseFailedError,
    RunAlreadyActiveError,
    RunCancelled,
    TransportError,
)
from vitalcheck_kernel.logging_config import LogContext, get_logger

from vitalcheck_batch.domain.cancellation import CancellationToken, ShouldContinue
from vitalcheck_batch.domain.types import (
    PhaseOutcome,
    PhaseStatus,
    ProcessResult,
    RetryOutcome,
    RunPhase,
    RunStatusReport,
    SubjectRow,
    phase_name,
)
from vitalcheck_batch.services.lease import RunLease
from vitalcheck_batch.services.retry import (
    RetryPolicy,
    process_rows,
    retry_call,
    retry_until_done,
)
from vitalcheck_batch.services.store import RunStore
from vitalcheck_batch.tasks.base import VerificationCheck
from vitalcheck_services.census import CensusSource
from vitalcheck_services.types import TransportFailure

logger = get_logger("batch.executor")

CredentialChecker = Callable[[str], bool]

_PULL_FROM = frozenset({RunPhase.IDLE, RunPhase.PULLING, RunPhase.DONE})
_POPULATION_FROM = frozenset({RunPhase.PULLED, RunPhase.CHECKING_POPULATION})
_LOGIN_FROM = frozenset({RunPhase.POPULATION_CHECKED, RunPhase.AWAITING_LOGIN})
_CIVIL_FROM = frozenset({RunPhase.CHECKING_CIVIL_REGISTRY, RunPhase.CIVIL_REGISTRY_CHECKED})


@dataclass(frozen=True)
class RunContext:
    """Per-run values threaded through the steps."""

    log_id: int
    token: CancellationToken
    trigger: str


class RunExecutor:
    """Resumable run state machine.

    Contract:
        - ``run_process()`` returns one of the five ProcessResult shapes and
          never raises.
        - ``status()`` reports the persisted state and whether a run holds
          the lease.

    Non-goals:
        - Does NOT decide when to run -- that is the scheduler's job.
        - Does NOT retry a failed phase -- the next trigger does.
    """

    def __init__(
        self,
        store: RunStore,
        census: CensusSource,
        population_check: VerificationCheck,
        civil_check: VerificationCheck,
        credential_checker: CredentialChecker,
        clock: Clock | None = None,
        lease: RunLease | None = None,
        policy: RetryPolicy | None = None,
    ):
        self._store = store
        self._census = census
        self._population_check = population_check
        self._civil_check = civil_check
        self._credential_checker = credential_checker
        self._clock = clock or SystemClock()
        self._lease = lease or RunLease()
        self._policy = policy or RetryPolicy()

    @property
    def is_running(self) -> bool:
        return self._lease.is_held

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run_process(
        self,
        should_continue: ShouldContinue | None = None,
        trigger: str = "manual",
    ) -> ProcessResult:
        """Run from the persisted phase until done, stopped or failed."""
        if self._lease.is_held:
            logger.info("run_already_active", extra={"task": "SYS", "color": "orange"})
            return ProcessResult.already_running()

        token = CancellationToken(should_continue)
        if token.cancelled:
            logger.info("run_stopped_before_start", extra={"task": "SYS", "color": "orange"})
            return ProcessResult.stopped()

        try:
            with self._lease.acquire(trigger):
                return self._run(token, trigger)
        except RunAlreadyActiveError:
            return ProcessResult.already_running()
        except Exception:
            logger.exception("run_process_failed", extra={"task": "ERROR", "color": "red"})
            return ProcessResult.error()

    def status(self) -> RunStatusReport:
        return build_status_report(self._store, self.is_running)

    # -------------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------------

    def _run(self, token: CancellationToken, trigger: str) -> ProcessResult:
        state = self._store.get_state()
        if state is None:
            logger.warning("run_state_missing", extra={"task": "SYS", "color": "orange"})
            return ProcessResult.no_state()

        try:
            phase = RunPhase(state.phase)
        except ValueError:
            raise PhaseFailedError(
                phase_name(state.phase), "persisted phase is not recognized"
            ) from None

        if phase in (RunPhase.IDLE, RunPhase.DONE) or state.log_id is None:
            log_id = self._store.start_log_run()
        else:
            log_id = state.log_id
            logger.info(
                "run_resumed",
                extra={"task": "SYS", "color": "purple", "phase_code": int(phase),
                       "phase_name": phase.label},
            )

        ctx = RunContext(log_id=log_id, token=token, trigger=trigger)
        steps = (
            ("pull", self._pull),
            ("check_population", self._check_population),
            ("await_login", self._await_login),
            ("check_civil_registry", self._check_civil_registry),
            ("finish", self._finish),
        )

        with LogContext.bind(log_id=log_id, trigger=trigger):
            logger.info(
                "run_started",
                extra={"task": "SYS", "color": "purple", "phase_code": int(phase)},
            )
            for index, (name, step) in enumerate(steps):
                if index > 0 and token.cancelled:
                    logger.info(
                        "run_stopped",
                        extra={"task": "SYS", "color": "orange", "before": name},
                    )
                    return ProcessResult.stopped()

                outcome = self._run_phase(name, step, phase, ctx)
                if outcome.stopped:
                    logger.info(
                        "run_stopped",
                        extra={"task": "SYS", "color": "orange", "during": name},
                    )
                    return ProcessResult.stopped()
                if outcome.failed:
                    return ProcessResult.error()
                phase = outcome.phase

            logger.info("run_done", extra={"task": "SYS", "color": "green"})
            return ProcessResult.done()

    def _run_phase(
        self,
        name: str,
        step: Callable[[RunPhase, RunContext], RunPhase],
        phase: RunPhase,
        ctx: RunContext,
    ) -> PhaseOutcome:
        """Run one step; a failure or stop hands back the unchanged phase."""
        try:
            with LogContext.bind(phase=name):
                next_phase = step(phase, ctx)
        except RunCancelled:
            return PhaseOutcome(phase, PhaseStatus.STOPPED)
        except Exception as exc:
            logger.exception(
                "phase_failed",
                extra={"task": "ERROR", "color": "red", "step": name, "phase_code": int(phase)},
            )
            self._mark_error(ctx.log_id, f"{name}: {exc}")
            return PhaseOutcome(phase, PhaseStatus.FAILED, error=str(exc))

        status = PhaseStatus.SKIPPED if next_phase == phase else PhaseStatus.ADVANCED
        return PhaseOutcome(next_phase, status)

    def _mark_error(self, log_id: int, summary: str) -> None:
        try:
            self._store.mark_log_error(log_id, summary)
        except Exception:
            logger.exception("mark_log_error_failed", extra={"task": "ERROR", "color": "red"})

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _pull(self, phase: RunPhase, ctx: RunContext) -> RunPhase:
        if phase not in _PULL_FROM:
            return phase

        self._store.set_phase(ctx.log_id, RunPhase.PULLING)
        logger.info("census_pull_started", extra={"task": "SYS", "color": "purple"})
        records = self._census.fetch()
        count = self._store.replace_subjects(records)
        self._store.set_phase(ctx.log_id, RunPhase.PULLED, row_count=count)
        logger.info("census_pull_finished", extra={"task": "SYS", "color": "green", "rows": count})
        return RunPhase.PULLED

    def _check_population(self, phase: RunPhase, ctx: RunContext) -> RunPhase:
        if phase not in _POPULATION_FROM:
            return phase

        self._verify_until_done(
            self._population_check,
            RunPhase.CHECKING_POPULATION,
            self._policy.population_round_delay_seconds,
            ctx,
        )
        self._store.set_phase(ctx.log_id, RunPhase.POPULATION_CHECKED)
        return RunPhase.POPULATION_CHECKED

    def _await_login(self, phase: RunPhase, ctx: RunContext) -> RunPhase:
        """Block until a stored credential token passes the validity check.

        Unbounded except by cancellation.  Phase 6 is not persisted here; the
        civil-registry step persists it on entry.
        """
        if phase not in _LOGIN_FROM:
            return phase

        self._store.set_phase(ctx.log_id, RunPhase.AWAITING_LOGIN)
        logger.info("awaiting_login", extra={"task": "LK", "color": "purple"})

        polls = 0
        while True:
            ctx.token.check("await_login")
            credential = self._store.get_active_token()
            if credential and self._credential_checker(credential):
                break
            polls += 1
            if polls == 1 or polls % 20 == 0:
                logger.info(
                    "credential_not_ready",
                    extra={"task": "LK", "color": "blue", "polls": polls,
                           "has_token": bool(credential)},
                )
            ctx.token.sleep(
                self._clock,
                self._policy.login_poll_seconds,
                step=self._policy.sleep_step_seconds,
                where="await_login",
            )

        logger.info("login_confirmed", extra={"task": "LK", "color": "green", "polls": polls})
        return RunPhase.CHECKING_CIVIL_REGISTRY

    def _check_civil_registry(self, phase: RunPhase, ctx: RunContext) -> RunPhase:
        if phase not in _CIVIL_FROM:
            return phase

        self._verify_until_done(
            self._civil_check,
            RunPhase.CHECKING_CIVIL_REGISTRY,
            self._policy.civil_round_delay_seconds,
            ctx,
        )
        self._store.set_phase(ctx.log_id, RunPhase.CIVIL_REGISTRY_CHECKED)
        return RunPhase.CIVIL_REGISTRY_CHECKED

    def _finish(self, phase: RunPhase, ctx: RunContext) -> RunPhase:
        if phase != RunPhase.CIVIL_REGISTRY_CHECKED:
            return phase

        self._store.set_phase(ctx.log_id, RunPhase.DONE)
        self._store.complete_log_run(ctx.log_id)
        logger.info("run_completed", extra={"task": "SYS", "color": "green"})
        return RunPhase.DONE

    # -------------------------------------------------------------------------
    # Verification
    # -------------------------------------------------------------------------

    def _verify_until_done(
        self,
        check: VerificationCheck,
        in_progress: RunPhase,
        round_delay_seconds: float,
        ctx: RunContext,
    ) -> None:
        """Persist ``in_progress`` and converge ``check``.

        Raises:
            RunCancelled: If the window closed.
            ConvergenceError: If rounds ran out with rows still pending.
        """
        pending = check.count_pending(self._store)
        detail_id = self._store.set_phase(ctx.log_id, in_progress, row_count=pending)
        logger.info(
            "check_started",
            extra={"task": check.task_id, "color": "purple", "pending": pending},
        )

        def run_round():
            return process_rows(
                check.pending_rows(self._store),
                lambda row: self._verify_row(check, row, ctx),
                lambda row, value: check.record_success(self._store, row, value, detail_id),
                lambda row, error: self._record_failure(check, row, error),
                ctx.token,
            )

        result = retry_until_done(
            lambda: check.count_pending(self._store),
            run_round,
            max_rounds=self._policy.max_rounds,
            round_delay_seconds=round_delay_seconds,
            token=ctx.token,
            clock=self._clock,
            sleep_step=self._policy.sleep_step_seconds,
            label=check.task_id,
        )

        if result.stopped:
            raise RunCancelled(check.name)
        if not result.converged:
            raise ConvergenceError(check.name, result.rounds, result.pending)

        logger.info(
            "check_converged",
            extra={"task": check.task_id, "color": "green", "rounds": result.rounds},
        )

    def _verify_row(
        self,
        check: VerificationCheck,
        row: SubjectRow,
        ctx: RunContext,
    ) -> RetryOutcome:
        return retry_call(
            lambda: check.verify(self._store, row, should_continue=ctx.token.should_continue),
            max_attempts=self._policy.max_attempts,
            delay_seconds=self._policy.delay_seconds,
            token=ctx.token,
            clock=self._clock,
            sleep_step=self._policy.sleep_step_seconds,
            label=check.task_id,
        )

    def _record_failure(self, check: VerificationCheck, row: SubjectRow, error: Any) -> None:
        if isinstance(error, TransportFailure):
            error = TransportError(check.name, error.reason, error.status_code)
        logger.warning(
            "row_verification_failed",
            extra={
                "task": check.task_id,
                "color": "orange",
                "subject_id": row.id,
                "error_code": getattr(error, "code", None),
                "error": str(error),
            },
        )
        check.record_failure(self._store, row, error)


def build_status_report(store: RunStore, is_processing: bool) -> RunStatusReport:
    """Persisted run state plus the current LogRun's phase history."""
    state = store.get_state()
    if state is None:
        return RunStatusReport(
            is_processing=is_processing, phase=None, phase_name=None, log_id=None,
        )
    details = (
        tuple(store.list_log_details(state.log_id))
        if state.log_id is not None
        else ()
    )
    return RunStatusReport(
        is_processing=is_processing,
        phase=state.phase,
        phase_name=state.phase_name,
        log_id=state.log_id,
        details=details,
    )
