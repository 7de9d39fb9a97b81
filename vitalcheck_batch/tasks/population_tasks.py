"""
Check: population registry ("checkpop").
"""

from __future__ import annotations

from typing import Any, Callable

from vitalcheck_batch.domain.status import to_buddhist_dob
from vitalcheck_batch.domain.types import SubjectRow
from vitalcheck_services.population import PopulationRegistryClient
from vitalcheck_services.types import AdapterResult, PopulationCheck, TransportFailure

POPULATION_CHECK = "population"


class PopulationCheckTask:
    """Ask the population registry for every subject still pending there."""

    def __init__(self, client: PopulationRegistryClient):
        self._client = client

    @property
    def name(self) -> str:
        return POPULATION_CHECK

    @property
    def task_id(self) -> str:
        return "CHECKPOP"

    def count_pending(self, store) -> int:
        return store.count_population_pending()

    def pending_rows(self, store) -> list[SubjectRow]:
        return store.population_pending()

    def verify(
        self,
        store,
        row: SubjectRow,
        should_continue: Callable[[], bool] | None = None,
    ) -> AdapterResult[PopulationCheck]:
        if row.birth_date is None:
            return TransportFailure(reason="subject has no birth date")
        return self._client.check(
            row.cid, to_buddhist_dob(row.birth_date), should_continue=should_continue,
        )

    def record_success(
        self,
        store,
        row: SubjectRow,
        value: PopulationCheck,
        detail_id: int | None,
    ) -> None:
        store.record_population_result(row.id, value.code, detail_id=detail_id)

    def record_failure(self, store, row: SubjectRow, error: Any) -> None:
        store.record_population_failure(row.id)
