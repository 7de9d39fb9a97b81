"""
Tests for vitalcheck_batch.services.scheduler -- window-driven triggering.

Validates:
- A tick fires the executor only inside an eligible window
- The live predicate follows the window and the stop signal
- Done-state dedupe: one run per window per day, start day only
- Overlap protection and failure isolation
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from vitalcheck_kernel.domain.clock import DeterministicClock
from vitalcheck_kernel.exceptions import ConfigurationError

from vitalcheck_batch.domain.types import ProcessResult, RunPhase
from vitalcheck_batch.services.scheduler import TriggerScheduler
from vitalcheck_config.schema import ScheduleWindowDef


class FakeExecutor:
    """Records run_process calls; the run itself returns immediately."""

    def __init__(self, result=None, error=None):
        self.result = result or ProcessResult.done()
        self.error = error
        self.is_running = False
        self.calls: list[tuple] = []
        self.called = threading.Event()

    def run_process(self, should_continue=None, trigger="manual"):
        self.calls.append((should_continue, trigger))
        self.called.set()
        if self.error is not None:
            raise self.error
        return self.result


def _windows(store, *defs):
    store.replace_schedule_windows([
        ScheduleWindowDef(month=m, day=d, start_time=t, duration_hours=h)
        for m, d, t, h in defs
    ])


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def scheduler(seeded_store, executor, clock):
    return TriggerScheduler(seeded_store, executor, clock=clock)


def _mark_done(store):
    log_id = store.start_log_run()
    store.set_phase(log_id, RunPhase.DONE)


# =============================================================================
# Triggering
# =============================================================================


class TestTick:
    def test_no_windows_no_trigger(self, scheduler, executor):
        assert scheduler.tick() is False
        assert executor.calls == []

    def test_triggers_inside_window(self, scheduler, executor, seeded_store):
        _windows(seeded_store, (1, 15, "22:00:00", 4))
        assert scheduler.tick() is True

        [(predicate, trigger)] = executor.calls
        assert trigger == "schedule"
        assert predicate() is True

    def test_outside_window_no_trigger(self, scheduler, executor, seeded_store):
        _windows(seeded_store, (1, 15, "10:00:00", 2))
        assert scheduler.tick() is False
        assert executor.calls == []

    def test_future_window_no_trigger(self, scheduler, executor, seeded_store):
        _windows(seeded_store, (1, 20, "22:00:00", 4))
        assert scheduler.tick() is False

    def test_first_eligible_window_wins(self, scheduler, executor, seeded_store):
        _windows(
            seeded_store,
            (1, 15, "22:30:00", 2),
            (1, 15, "22:00:00", 4),
        )
        assert scheduler.tick() is True
        assert len(executor.calls) == 1

    def test_predicate_turns_false_when_window_closes(self, scheduler, executor, seeded_store, clock):
        _windows(seeded_store, (1, 15, "22:00:00", 4))
        scheduler.tick()
        predicate = executor.calls[0][0]

        clock.advance(timedelta(hours=2, minutes=59).total_seconds())
        assert predicate() is True
        clock.advance(60)
        assert predicate() is False

    def test_predicate_turns_false_on_stop(self, scheduler, executor, seeded_store):
        _windows(seeded_store, (1, 15, "22:00:00", 4))
        scheduler.tick()
        predicate = executor.calls[0][0]

        scheduler.stop()
        assert predicate() is False

    def test_unfinished_run_resumes_on_later_days(self, seeded_store, executor):
        log_id = seeded_store.start_log_run()
        seeded_store.set_phase(log_id, RunPhase.CHECKING_POPULATION)
        _windows(seeded_store, (1, 15, "22:00:00", 4))

        clock = DeterministicClock(datetime(2024, 1, 17, 23, 0, 0))
        scheduler = TriggerScheduler(seeded_store, executor, clock=clock)
        assert scheduler.tick() is True


class TestDoneDedupe:
    def test_done_state_fires_once_per_day(self, scheduler, executor, seeded_store):
        _mark_done(seeded_store)
        _windows(seeded_store, (1, 15, "22:00:00", 4))

        assert scheduler.tick() is True
        assert scheduler.tick() is False
        assert len(executor.calls) == 1

    def test_done_state_skips_after_start_day(self, seeded_store, executor):
        _mark_done(seeded_store)
        _windows(seeded_store, (1, 15, "22:00:00", 4))

        clock = DeterministicClock(datetime(2024, 1, 16, 23, 0, 0))
        scheduler = TriggerScheduler(seeded_store, executor, clock=clock)
        assert scheduler.tick() is False
        assert executor.calls == []


# =============================================================================
# Guards and failure isolation
# =============================================================================


class TestGuards:
    def test_skips_while_executor_running(self, scheduler, executor, seeded_store):
        _windows(seeded_store, (1, 15, "22:00:00", 4))
        executor.is_running = True
        assert scheduler.tick() is False
        assert executor.calls == []

    def test_overlapping_tick_dropped(self, scheduler, executor, seeded_store):
        _windows(seeded_store, (1, 15, "22:00:00", 4))
        with scheduler._tick_guard:
            assert scheduler.tick() is False
        assert executor.calls == []

    def test_tick_swallows_errors(self, seeded_store, clock, captured_logs):
        executor = FakeExecutor(error=RuntimeError("boom"))
        _windows(seeded_store, (1, 15, "22:00:00", 4))
        scheduler = TriggerScheduler(seeded_store, executor, clock=clock)

        assert scheduler.tick() is False
        assert any(r["message"] == "scheduler_tick_failed" for r in captured_logs())

    def test_failed_run_is_logged(self, seeded_store, clock, captured_logs):
        executor = FakeExecutor(result=ProcessResult.error())
        _windows(seeded_store, (1, 15, "22:00:00", 4))
        scheduler = TriggerScheduler(seeded_store, executor, clock=clock)

        assert scheduler.tick() is True
        failures = [r for r in captured_logs() if r["message"] == "scheduler_run_failed"]
        assert failures[0]["state"] == "Processing error."

    def test_invalid_timezone(self, seeded_store, executor, clock):
        with pytest.raises(ConfigurationError) as exc_info:
            TriggerScheduler(seeded_store, executor, clock=clock, timezone="Mars/Olympus")
        assert exc_info.value.key == "scheduler.timezone"


class TestWallClock:
    def test_naive_clock_used_as_is(self, scheduler, clock):
        assert scheduler.wall_now() == clock.now()

    def test_aware_clock_converted_to_zone(self, seeded_store, executor):
        clock = DeterministicClock(datetime(2024, 1, 15, 16, 0, 0, tzinfo=timezone.utc))
        scheduler = TriggerScheduler(seeded_store, executor, clock=clock, timezone="Asia/Bangkok")
        assert scheduler.wall_now() == datetime(2024, 1, 15, 23, 0, 0)

    def test_window_evaluated_in_zone(self, seeded_store, executor):
        _windows(seeded_store, (1, 15, "22:00:00", 4))
        clock = DeterministicClock(datetime(2024, 1, 15, 16, 0, 0, tzinfo=timezone.utc))
        scheduler = TriggerScheduler(seeded_store, executor, clock=clock, timezone="Asia/Bangkok")
        assert scheduler.tick() is True


# =============================================================================
# Background thread
# =============================================================================


class TestLifecycle:
    def test_start_ticks_and_stop_joins(self, seeded_store, executor, clock):
        _windows(seeded_store, (1, 15, "22:00:00", 4))
        scheduler = TriggerScheduler(
            seeded_store, executor, clock=clock,
            tick_interval_seconds=0.01, initial_delay_seconds=0,
        )
        scheduler.start()
        try:
            assert executor.called.wait(timeout=5)
            assert scheduler.is_running
        finally:
            scheduler.stop(timeout=5)
        assert not scheduler.is_running

    def test_stop_before_initial_delay(self, seeded_store, executor, clock):
        scheduler = TriggerScheduler(seeded_store, executor, clock=clock, initial_delay_seconds=60)
        scheduler.start()
        scheduler.stop(timeout=5)
        assert not scheduler.is_running
        assert executor.calls == []


class TestSpringWindowScenario:
    def test_fires_once_then_skips_while_running(self, seeded_store, executor):
        _windows(seeded_store, (3, 15, "02:00:00", 4))
        clock = DeterministicClock(datetime(2024, 3, 15, 3, 30, 0))
        scheduler = TriggerScheduler(seeded_store, executor, clock=clock)

        assert scheduler.tick() is True
        executor.is_running = True
        clock.advance(60)
        assert scheduler.tick() is False
        assert len(executor.calls) == 1
