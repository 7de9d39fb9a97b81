"""
Check: civil registry (LK2).

The active credential token is re-read for every attempt, so a token
refreshed by an operator mid-run is picked up without restarting.
"""

from __future__ import annotations

from typing import Any, Callable

from vitalcheck_kernel.exceptions import CredentialUnavailableError

from vitalcheck_batch.domain.status import from_buddhist_dob
from vitalcheck_batch.domain.types import SubjectRow
from vitalcheck_services.civil_registry import CivilRegistryClient
from vitalcheck_services.types import AdapterResult, CivilRegistryRecord

CIVIL_REGISTRY_CHECK = "civil_registry"


class CivilRegistryCheckTask:
    """Ask the civil registry for every subject the population check left pending."""

    def __init__(self, client: CivilRegistryClient):
        self._client = client

    @property
    def name(self) -> str:
        return CIVIL_REGISTRY_CHECK

    @property
    def task_id(self) -> str:
        return "LK"

    def count_pending(self, store) -> int:
        return store.count_civil_pending()

    def pending_rows(self, store) -> list[SubjectRow]:
        return store.civil_pending()

    def verify(
        self,
        store,
        row: SubjectRow,
        should_continue: Callable[[], bool] | None = None,
    ) -> AdapterResult[CivilRegistryRecord]:
        token = store.get_active_token()
        if not token:
            raise CredentialUnavailableError(self.name)
        return self._client.check(row.cid, token, should_continue=should_continue)

    def record_success(
        self,
        store,
        row: SubjectRow,
        value: CivilRegistryRecord,
        detail_id: int | None,
    ) -> None:
        # An unparseable registry date keeps the census birth date.
        store.record_civil_result(
            row.id,
            value.status_code,
            birth_date=from_buddhist_dob(value.date_of_birth),
            detail_id=detail_id,
        )

    def record_failure(self, store, row: SubjectRow, error: Any) -> None:
        store.record_civil_failure(row.id)
