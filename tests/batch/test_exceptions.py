"""
Tests for vitalcheck_kernel.exceptions -- typed errors with machine-readable codes.
"""

import pytest

from vitalcheck_kernel.exceptions import (
    AdapterError,
    CensusSourceError,
    ConfigurationError,
    ConvergenceError,
    CredentialUnavailableError,
    InvalidScheduleWindowError,
    PhaseFailedError,
    RunAlreadyActiveError,
    RunCancelled,
    RunError,
    RunStateNotFoundError,
    ScheduleError,
    TransportError,
    VitalCheckError,
)


@pytest.mark.parametrize(
    "exc,code,base",
    [
        (RunAlreadyActiveError("schedule"), "RUN_ALREADY_ACTIVE", RunError),
        (RunStateNotFoundError(), "RUN_STATE_NOT_FOUND", RunError),
        (PhaseFailedError("pull", "boom"), "PHASE_FAILED", RunError),
        (ConvergenceError("population", 5, 3), "CONVERGENCE_FAILED", RunError),
        (TransportError("population", "HTTP 503", 503), "TRANSPORT_ERROR", AdapterError),
        (CredentialUnavailableError(), "CREDENTIAL_UNAVAILABLE", AdapterError),
        (CensusSourceError("dbo.MAS_MEMBERS", "down"), "CENSUS_SOURCE_ERROR", VitalCheckError),
        (InvalidScheduleWindowError("month", 13, 2), "INVALID_SCHEDULE_WINDOW", ScheduleError),
        (ConfigurationError("census.url", "missing"), "CONFIGURATION_ERROR", VitalCheckError),
    ],
)
def test_codes_and_hierarchy(exc, code, base):
    assert exc.code == code
    assert isinstance(exc, base)
    assert isinstance(exc, VitalCheckError)


def test_cancellation_is_not_an_error():
    assert not isinstance(RunCancelled("pull"), VitalCheckError)
    assert str(RunCancelled("pull")) == "Run cancelled during pull"
    assert str(RunCancelled()) == "Run cancelled"


def test_messages_carry_context():
    assert "503" in str(TransportError("population", "HTTP 503", 503))
    assert "item 2" in str(InvalidScheduleWindowError("month", 13, 2))
    assert "3 row(s) still pending" in str(ConvergenceError("civil_registry", 5, 3))
    assert "census.url" in str(ConfigurationError("census.url", "missing"))
