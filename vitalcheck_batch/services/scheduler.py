"""
TriggerScheduler -- In-process window-driven trigger.

Contract:
    Every tick reads the stored schedule windows and the run state, picks
    the first eligible window (pure evaluation, ``vitalcheck_batch.domain.window``)
    and hands the executor a live predicate bound to that window.

Architecture: vitalcheck_batch/services.  Uses vitalcheck_batch.domain.window
    for pure evaluation and vitalcheck_batch.services.executor for execution.

Invariants enforced:
    - At most one run triggered per tick; overlapping ticks are dropped.
    - A window that already fired today is not fired again today.
    - Tick failures are logged and never escape the loop.
"""

from __future__ import annotations

import threading
from datetime import date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from vitalcheck_kernel.domain.clock import Clock, SystemClock
from vitalcheck_kernel.exceptions import ConfigurationError
from vitalcheck_kernel.logging_config import LogContext, get_logger

from vitalcheck_batch.domain.cancellation import ShouldContinue
from vitalcheck_batch.domain.types import RunPhase
from vitalcheck_batch.domain.window import (
    NormalizedWindow,
    date_key,
    is_start_day,
    is_within_window,
    normalize_windows,
    window_start_date,
)
from vitalcheck_batch.services.executor import RunExecutor
from vitalcheck_batch.services.store import RunStore

logger = get_logger("batch.scheduler")


class TriggerScheduler:
    """Polling trigger for schedule windows.

    Contract:
        - ``tick()`` evaluates windows and triggers at most one run; returns
          whether a run was triggered.
        - ``start()`` / ``stop()`` for background thread operation.
        - The run started by a tick is stopped when its window closes or
          when ``stop()`` is called.

    Non-goals:
        - NOT a distributed scheduler (the run lease is per process).
    """

    def __init__(
        self,
        store: RunStore,
        executor: RunExecutor,
        clock: Clock | None = None,
        timezone: str = "UTC",
        tick_interval_seconds: float = 60,
        initial_delay_seconds: float = 5,
    ):
        self._store = store
        self._executor = executor
        self._clock = clock or SystemClock()
        try:
            self._zone = ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigurationError("scheduler.timezone", f"unknown time zone {timezone!r}") from exc
        self._tick_interval = tick_interval_seconds
        self._initial_delay = initial_delay_seconds
        self._last_run_by_key: dict[str, str] = {}
        self._tick_guard = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def wall_now(self) -> datetime:
        """Naive wall-clock "now" in the scheduler's time zone."""
        now = self._clock.now()
        if now.tzinfo is None:
            return now
        return now.astimezone(self._zone).replace(tzinfo=None)

    def tick(self) -> bool:
        """Evaluate windows and trigger at most one run (public for testing)."""
        if not self._tick_guard.acquire(blocking=False):
            logger.debug("scheduler_tick_overlap", extra={"task": "CRON"})
            return False
        try:
            return self._evaluate()
        except Exception:
            logger.exception("scheduler_tick_failed", extra={"task": "CRON", "color": "red"})
            return False
        finally:
            self._tick_guard.release()

    def start(self) -> None:
        """Start the tick loop in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="vitalcheck-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "scheduler_started",
            extra={"task": "CRON", "color": "purple", "tick_interval": self._tick_interval},
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop, which also stops an in-flight run, and wait.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped", extra={"task": "CRON", "color": "purple"})

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        if self._stop_event.wait(timeout=self._initial_delay):
            return
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=self._tick_interval)

    def _evaluate(self) -> bool:
        now = self.wall_now()
        windows = normalize_windows(self._store.list_schedule_windows())
        state = self._store.get_state()
        is_done = state is not None and state.phase == RunPhase.DONE
        today = date_key(now)

        for window in windows:
            if self._stop_event.is_set():
                return False

            start_date = window_start_date(window, now)
            if start_date is None or now.date() < start_date:
                continue
            if not is_within_window(now, start_date, window):
                continue

            if is_done:
                if not is_start_day(window, now):
                    continue
                if self._last_run_by_key.get(window.key) == today:
                    continue

            if self._executor.is_running:
                logger.info(
                    "scheduler_skip_running",
                    extra={"task": "CRON", "color": "orange", "window_key": window.key},
                )
                return False

            self._last_run_by_key[window.key] = today
            logger.info(
                "scheduler_trigger",
                extra={"task": "CRON", "color": "purple", "window_key": window.key,
                       "window_label": window.label},
            )
            with LogContext.bind(window=window.key):
                result = self._executor.run_process(
                    self._window_predicate(window, start_date),
                    trigger="schedule",
                )
            if not result.ok:
                logger.error(
                    "scheduler_run_failed",
                    extra={"task": "CRON", "color": "red", "state": result.state},
                )
            return True

        return False

    def _window_predicate(self, window: NormalizedWindow, start_date: date) -> ShouldContinue:
        def should_continue() -> bool:
            if self._stop_event.is_set():
                return False
            return is_within_window(self.wall_now(), start_date, window)

        return should_continue
