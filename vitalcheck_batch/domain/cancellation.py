"""
Cooperative cancellation for a run.

A scheduled run carries a live predicate, "is the triggering window still
open?", re-evaluated at every checkpoint.  Manual runs carry no predicate and
are never cancelled.
"""

from __future__ import annotations

from typing import Callable

from vitalcheck_kernel.domain.clock import Clock
from vitalcheck_kernel.exceptions import RunCancelled

ShouldContinue = Callable[[], bool]


def _always() -> bool:
    return True


class CancellationToken:
    """Wraps a should-continue predicate.

    Contract:
        - ``cancelled`` re-evaluates the predicate on every access.
        - ``check()`` raises RunCancelled when cancelled.
        - ``sleep()`` waits on the clock in ``step`` slices and checks before
          each slice, so a closing window interrupts a long backoff.
    """

    def __init__(self, should_continue: ShouldContinue | None = None):
        self._should_continue = should_continue or _always

    @property
    def should_continue(self) -> ShouldContinue:
        return self._should_continue

    @property
    def cancelled(self) -> bool:
        return not self._should_continue()

    def check(self, where: str = "") -> None:
        if self.cancelled:
            raise RunCancelled(where)

    def sleep(self, clock: Clock, seconds: float, step: float = 1.0, where: str = "") -> None:
        remaining = float(seconds)
        while remaining > 0:
            self.check(where)
            wait = min(step, remaining)
            clock.sleep(wait)
            remaining -= wait
