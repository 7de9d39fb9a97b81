"""
VerificationCheck protocol and CheckRegistry.

Contract:
    ``VerificationCheck`` is the interface of one external verification
    (population registry, civil registry).  The executor drives every check
    the same way: count pending, fetch pending rows, verify each row under a
    bounded retry, then record the outcome.
    ``CheckRegistry`` stores checks keyed by ``name``.

Architecture:
    vitalcheck_batch/tasks.  Imports only from vitalcheck_batch.domain and
    vitalcheck_services.types.  The store is passed in, never imported.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol, runtime_checkable

from vitalcheck_batch.domain.types import SubjectRow
from vitalcheck_services.types import AdapterResult


@runtime_checkable
class VerificationCheck(Protocol):
    """One external verification applied to pending subjects.

    Contract:
        - ``name``: unique key registered in CheckRegistry.
        - ``task_id``: short tag used in console log lines.
        - ``verify()`` performs ONE attempt and reports through the adapter
          result shape; it never retries.
          ``should_continue`` is the run predicate, handed to the adapter.
        - ``record_success()`` / ``record_failure()`` persist one row.

    Non-goals:
        - Does NOT retry or sleep -- the retry engine owns both.
    """

    @property
    def name(self) -> str: ...

    @property
    def task_id(self) -> str: ...

    def count_pending(self, store: Any) -> int: ...

    def pending_rows(self, store: Any) -> list[SubjectRow]: ...

    def verify(
        self,
        store: Any,
        row: SubjectRow,
        should_continue: Callable[[], bool] | None = None,
    ) -> AdapterResult[Any]: ...

    def record_success(
        self,
        store: Any,
        row: SubjectRow,
        value: Any,
        detail_id: int | None,
    ) -> None: ...

    def record_failure(self, store: Any, row: SubjectRow, error: Any) -> None: ...


class CheckRegistry:
    """Registry mapping check names to VerificationCheck implementations."""

    def __init__(self) -> None:
        self._checks: dict[str, VerificationCheck] = {}

    def register(self, check: VerificationCheck) -> None:
        """Register a check.

        Raises:
            ValueError: If a check with the same name is already registered.
        """
        if check.name in self._checks:
            raise ValueError(f"Check '{check.name}' is already registered")
        self._checks[check.name] = check

    def get(self, name: str) -> VerificationCheck:
        """Retrieve a registered check by name.

        Raises:
            KeyError: If no check is registered under ``name``.
        """
        try:
            return self._checks[name]
        except KeyError:
            raise KeyError(
                f"No check registered for '{name}'. "
                f"Available: {sorted(self._checks.keys())}"
            ) from None

    def list_checks(self) -> tuple[str, ...]:
        return tuple(sorted(self._checks.keys()))

    def __len__(self) -> int:
        return len(self._checks)

    def __contains__(self, name: str) -> bool:
        return name in self._checks
