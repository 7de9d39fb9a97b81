"""
RunLease -- at most one run in flight per process.

The lease is shared by the manual trigger and the scheduler.  A second
trigger does not wait; it is told that processing is already running.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from vitalcheck_kernel.exceptions import RunAlreadyActiveError


class RunLease:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._holder: str | None = None

    @property
    def is_held(self) -> bool:
        return self._lock.locked()

    @property
    def holder(self) -> str | None:
        return self._holder

    @contextmanager
    def acquire(self, holder: str = "manual") -> Iterator[None]:
        """Hold the lease for the body of the ``with`` block.

        Raises:
            RunAlreadyActiveError: If another run holds the lease.
        """
        if not self._lock.acquire(blocking=False):
            raise RunAlreadyActiveError(self._holder)
        self._holder = holder
        try:
            yield
        finally:
            self._holder = None
            self._lock.release()
