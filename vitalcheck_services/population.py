"""
Population-registry ("checkpop") client.

Contract:
    ``check(cid, dob)`` posts ``{"id": cid, "dob": dob}`` and returns
    ``Resolved(PopulationCheck)`` for a well-formed 2xx answer, otherwise
    ``TransportFailure``, or ``Cancelled`` when the run predicate is already
    false.  It never raises for transport problems; retries
    belong to the caller.
"""

from __future__ import annotations

from typing import Callable

import requests

from vitalcheck_kernel.logging_config import get_logger

from vitalcheck_services.types import (
    STATUS_CODE_MAX_LENGTH,
    AdapterResult,
    Cancelled,
    PopulationCheck,
    Resolved,
    TransportFailure,
)

logger = get_logger("services.population")


class PopulationRegistryClient:
    service = "checkpop"

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 30.0,
        session: requests.Session | None = None,
    ):
        self._url = url
        self._timeout = timeout_seconds
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    def check(
        self,
        cid: str,
        dob: str,
        should_continue: Callable[[], bool] | None = None,
    ) -> AdapterResult[PopulationCheck]:
        """Ask the registry for one subject.

        Args:
            cid: 13-digit personal identifier.
            dob: Buddhist-era birth date, ``YYYYMMDD``.
            should_continue: Run predicate; when it is false no request is
                sent and ``Cancelled`` is returned.
        """
        if should_continue is not None and not should_continue():
            return Cancelled(self.service)
        try:
            response = self._session.post(
                self._url,
                json={"id": cid, "dob": dob},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.warning(
                "population_request_failed",
                extra={"task": "CHECKPOP", "color": "orange", "error": str(exc)},
            )
            return TransportFailure(reason=str(exc))

        if not response.ok:
            return TransportFailure(
                reason=f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            return TransportFailure(
                reason="response body is not JSON",
                status_code=response.status_code,
            )

        if not isinstance(body, dict) or body.get("code") is None:
            return TransportFailure(
                reason="response has no code",
                status_code=response.status_code,
            )

        body_status = body.get("status")
        if body_status is not None and str(body_status) != "200":
            return TransportFailure(
                reason=f"registry status {body_status}",
                status_code=response.status_code,
            )

        code = str(body["code"])
        if len(code) > STATUS_CODE_MAX_LENGTH:
            return TransportFailure(
                reason=f"unexpected registry code {code[:STATUS_CODE_MAX_LENGTH]!r}...",
                status_code=response.status_code,
            )

        return Resolved(PopulationCheck(code=code, description=body.get("desc")))

    def close(self) -> None:
        self._session.close()
