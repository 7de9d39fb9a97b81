"""
Civil-registry (LK2) client.

Contract:
    - ``check(cid, token)`` posts a two-service request (serviceID 1 and 27)
      and resolves from the serviceID 1 entry when its ``responseStatus`` is
      200.  A false run predicate gives ``Cancelled`` without a request;
      anything else is a ``TransportFailure``.
    - ``check_token(token)`` is True only for a 2xx answer from the token
      check endpoint; network errors count as False.

Non-goals:
    - Does NOT obtain tokens.  Operators log in out of band and the token is
      stored through ``RunStore.upsert_credential_token``.
"""

from __future__ import annotations

from typing import Any, Callable

import requests

from vitalcheck_kernel.logging_config import get_logger

from vitalcheck_services.types import (
    STATUS_CODE_MAX_LENGTH,
    AdapterResult,
    Cancelled,
    CivilRegistryRecord,
    Resolved,
    TransportFailure,
)

logger = get_logger("services.civil_registry")

PERSON_SERVICE_ID = 1
HOUSE_SERVICE_ID = 27
REQUEST_PATH = "/api/center/request/"


class CivilRegistryClient:
    service = "lk2"

    def __init__(
        self,
        api_url: str,
        job_id: str | None,
        token_check_url: str | None = None,
        timeout_seconds: float = 30.0,
        session: requests.Session | None = None,
    ):
        self._request_url = api_url.rstrip("/") + REQUEST_PATH
        self._job_id = job_id
        self._token_check_url = token_check_url
        self._timeout = timeout_seconds
        self._session = session or requests.Session()

    @staticmethod
    def _headers(token: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }

    def build_payload(self, cid: str) -> dict[str, Any]:
        return {
            "jobID": self._job_id,
            "data": [
                {"serviceID": PERSON_SERVICE_ID, "query": {"personalID": cid}},
                {"serviceID": HOUSE_SERVICE_ID, "query": {"personalID": cid}},
            ],
        }

    def check(
        self,
        cid: str,
        token: str | None,
        should_continue: Callable[[], bool] | None = None,
    ) -> AdapterResult[CivilRegistryRecord]:
        if should_continue is not None and not should_continue():
            return Cancelled(self.service)
        if not token:
            return TransportFailure(reason="no active credential token")

        try:
            response = self._session.post(
                self._request_url,
                json=self.build_payload(cid),
                headers=self._headers(token),
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.warning(
                "civil_registry_request_failed",
                extra={"task": "LK", "color": "orange", "error": str(exc)},
            )
            return TransportFailure(reason=str(exc))

        if not response.ok:
            return TransportFailure(
                reason=_error_message(response) or f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            return TransportFailure(
                reason="response body is not JSON",
                status_code=response.status_code,
            )

        entries = body.get("data") if isinstance(body, dict) else None
        if not isinstance(entries, list):
            return TransportFailure(
                reason="response has no data list",
                status_code=response.status_code,
            )

        for entry in entries:
            if not isinstance(entry, dict) or entry.get("serviceID") != PERSON_SERVICE_ID:
                continue
            if str(entry.get("responseStatus")) != "200":
                return TransportFailure(
                    reason=f"service {PERSON_SERVICE_ID} status {entry.get('responseStatus')}",
                    status_code=response.status_code,
                )
            data = entry.get("responseData") or {}
            status_code = _as_text(data.get("statusOfPersonCode"))
            if status_code is not None and len(status_code) > STATUS_CODE_MAX_LENGTH:
                return TransportFailure(
                    reason=f"unexpected person status {status_code[:STATUS_CODE_MAX_LENGTH]!r}...",
                    status_code=response.status_code,
                )
            return Resolved(
                CivilRegistryRecord(
                    date_of_birth=_as_text(data.get("dateOfBirth")),
                    status_code=status_code,
                )
            )

        return TransportFailure(
            reason=f"service {PERSON_SERVICE_ID} missing from response",
            status_code=response.status_code,
        )

    def check_token(self, token: str) -> bool:
        if not self._token_check_url:
            return False
        try:
            response = self._session.get(
                self._token_check_url,
                headers=self._headers(token),
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.debug("token_check_failed", extra={"task": "LK", "error": str(exc)})
            return False
        return response.ok

    def close(self) -> None:
        self._session.close()


def _as_text(value: Any) -> str | None:
    return None if value is None else str(value)


def _error_message(response: requests.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        message = body.get("errorMessage")
        return str(message) if message else None
    return None
