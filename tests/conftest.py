"""
Pytest fixtures for the vitalcheck test suite.

Provides:
- In-memory SQLite stores with the real ORM models (StaticPool, so the
  scheduler thread sees the same database)
- DeterministicClock
- Fake census source, fake registry checks and a fake credential checker
- Structured log capture
"""

import json
import logging
from datetime import date, datetime
from io import StringIO
from typing import Any

import pytest

from vitalcheck_kernel.db.base import Base
from vitalcheck_kernel.db.engine import build_engine
from vitalcheck_kernel.domain.clock import DeterministicClock
from vitalcheck_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

import vitalcheck_batch.models  # noqa: F401
from vitalcheck_batch.domain.types import SubjectRow
from vitalcheck_batch.services.retry import RetryPolicy
from vitalcheck_batch.services.store import RunStore
from vitalcheck_services.types import (
    CensusRecord,
    PopulationCheck,
    Resolved,
    TransportFailure,
)

from sqlalchemy.orm import sessionmaker


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture vitalcheck logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, executor):
            executor.run_process()
            logs = captured_logs()
            assert any(r["message"] == "run_done" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("vitalcheck")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    eng = build_engine("sqlite://")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def clock():
    return DeterministicClock(datetime(2024, 1, 15, 23, 0, 0))


@pytest.fixture
def store(session_factory, clock):
    return RunStore(session_factory, clock=clock)


@pytest.fixture
def seeded_store(store):
    """Store with the singleton run state seeded at phase 0."""
    store.ensure_state()
    return store


@pytest.fixture
def fast_policy():
    """Retry policy with the production shape but short delays."""
    return RetryPolicy(
        max_attempts=3,
        delay_seconds=2.0,
        max_rounds=3,
        population_round_delay_seconds=0.0,
        civil_round_delay_seconds=1.0,
        login_poll_seconds=3.0,
    )


# =============================================================================
# Fakes
# =============================================================================


CENSUS_RECORDS = (
    CensusRecord(member_code="M001", cid="1100000000001", birth_date=date(1950, 3, 1)),
    CensusRecord(member_code="M002", cid="1100000000002", birth_date=date(1948, 7, 20)),
    CensusRecord(member_code="M003", cid="1100000000003", birth_date=None),
)


class FakeCensus:
    """Stands in for CensusSource."""

    def __init__(self, records=CENSUS_RECORDS, error: Exception | None = None):
        self.records = list(records)
        self.error = error
        self.calls = 0

    def fetch(self) -> list[CensusRecord]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.records)


class FakeCheck:
    """Scripted VerificationCheck backed by the real store.

    ``answers`` maps cid to a list of results returned attempt by attempt
    (the last one repeats); unknown cids resolve with ``default``.
    """

    def __init__(
        self,
        name: str = "population",
        task_id: str = "CHECKPOP",
        answers: dict[str, list[Any]] | None = None,
        default: Any = None,
        before_verify=None,
    ):
        self._name = name
        self._task_id = task_id
        self.answers = answers or {}
        self.default = default if default is not None else Resolved(PopulationCheck("0"))
        self.before_verify = before_verify
        self.calls: list[str] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def task_id(self) -> str:
        return self._task_id

    def count_pending(self, store) -> int:
        if self._name == "population":
            return store.count_population_pending()
        return store.count_civil_pending()

    def pending_rows(self, store) -> list[SubjectRow]:
        if self._name == "population":
            return store.population_pending()
        return store.civil_pending()

    def verify(self, store, row: SubjectRow, should_continue=None):
        self.calls.append(row.cid)
        if self.before_verify is not None:
            self.before_verify(row)
        script = self.answers.get(row.cid)
        if not script:
            return self.default
        return script.pop(0) if len(script) > 1 else script[0]

    def record_success(self, store, row, value, detail_id) -> None:
        if self._name == "population":
            store.record_population_result(row.id, value.code, detail_id=detail_id)
        else:
            store.record_civil_result(row.id, value.status_code, detail_id=detail_id)

    def record_failure(self, store, row, error) -> None:
        if self._name == "population":
            store.record_population_failure(row.id)
        else:
            store.record_civil_failure(row.id)


def transport_failure(reason: str = "HTTP 503") -> TransportFailure:
    return TransportFailure(reason=reason, status_code=503)


@pytest.fixture
def fake_census():
    return FakeCensus()
