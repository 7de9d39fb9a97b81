"""
Typed Exception Hierarchy for VitalCheck.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A multi-hour verification batch talks to two external registries, a census
database and its own state store.  Callers (the scheduler tick, the manual
trigger, the CLI) must decide what to do with a failure without parsing
message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, log-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        with lease.acquire():
            ...
    except RunAlreadyActiveError as e:
        return ProcessResult.already_running()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    VitalCheckError (base)
    |
    +-- RunError
    |   +-- RunAlreadyActiveError
    |   +-- RunStateNotFoundError
    |   +-- PhaseFailedError
    |   +-- ConvergenceError
    |
    +-- AdapterError
    |   +-- TransportError
    |   +-- CredentialUnavailableError
    |
    +-- CensusSourceError
    |
    +-- ScheduleError
    |   +-- InvalidScheduleWindowError
    |
    +-- ConfigurationError

    RunCancelled (control signal, NOT a VitalCheckError)

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category   | Code                     | When Raised
-----------|--------------------------|------------------------------------------
Run        | RUN_ALREADY_ACTIVE       | Run lease is held by another run
           | RUN_STATE_NOT_FOUND      | Singleton run_state row is missing
           | PHASE_FAILED             | A phase raised or could not complete
           | CONVERGENCE_FAILED       | Round budget exhausted, rows still pending
-----------|--------------------------|------------------------------------------
Adapter    | TRANSPORT_ERROR          | Registry call failed (network/status/body)
           | CREDENTIAL_UNAVAILABLE   | No ACTIVE civil-registry token
-----------|--------------------------|------------------------------------------
Census     | CENSUS_SOURCE_ERROR      | Source database unreachable or bad query
-----------|--------------------------|------------------------------------------
Schedule   | INVALID_SCHEDULE_WINDOW  | Bad month/day/hours/time in window input
-----------|--------------------------|------------------------------------------
Config     | CONFIGURATION_ERROR      | Unknown key, wrong type, missing URL

===============================================================================
DESIGN DECISIONS
===============================================================================

1. RunCancelled inherits from Exception, not VitalCheckError.
   Cancellation means "stop now, state is consistent".  Handlers that catch
   VitalCheckError to mark a run as failed must never see it.

2. The ``code`` attribute is a class attribute.
   Codes are static per type and readable without instantiation.

3. All context is stored as attributes.
   StructuredFormatter copies public exception attributes into the log line
   as ``exc_<name>`` fields.

===============================================================================
"""


class VitalCheckError(Exception):
    """
    Base exception for all vitalcheck errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "VITALCHECK_ERROR"


class RunCancelled(Exception):
    """Cooperative cancellation signal: the schedule window has closed.

    Raised from cancellation checkpoints (retry backoff, login wait, per-row
    loops) and handled by the run state machine, which reports
    "stopped" instead of "failed".
    """

    code: str = "RUN_CANCELLED"

    def __init__(self, where: str = ""):
        self.where = where
        super().__init__(f"Run cancelled{f' during {where}' if where else ''}")


# Run lifecycle


class RunError(VitalCheckError):
    """Base exception for run lifecycle errors."""

    code: str = "RUN_ERROR"


class RunAlreadyActiveError(RunError):
    """The process-wide run lease is already held."""

    code: str = "RUN_ALREADY_ACTIVE"

    def __init__(self, holder: str | None = None):
        self.holder = holder
        super().__init__(
            f"A run is already active{f' (held by {holder})' if holder else ''}"
        )


class RunStateNotFoundError(RunError):
    """The singleton run_state row does not exist."""

    code: str = "RUN_STATE_NOT_FOUND"

    def __init__(self) -> None:
        super().__init__("Run state row not found; run 'vitalcheck init-db'")


class PhaseFailedError(RunError):
    """A phase could not complete."""

    code: str = "PHASE_FAILED"

    def __init__(self, phase: str, reason: str):
        self.phase = phase
        self.reason = reason
        super().__init__(f"Phase {phase} failed: {reason}")


class ConvergenceError(RunError):
    """Verify-until-done exhausted its rounds with rows still pending."""

    code: str = "CONVERGENCE_FAILED"

    def __init__(self, check: str, rounds: int, pending: int):
        self.check = check
        self.rounds = rounds
        self.pending = pending
        super().__init__(
            f"{check} did not converge after {rounds} round(s): "
            f"{pending} row(s) still pending"
        )


# External adapters


class AdapterError(VitalCheckError):
    """Base exception for verification adapter errors."""

    code: str = "ADAPTER_ERROR"


class TransportError(AdapterError):
    """A registry call failed at the transport or contract level."""

    code: str = "TRANSPORT_ERROR"

    def __init__(self, service: str, reason: str, status_code: int | None = None):
        self.service = service
        self.reason = reason
        self.status_code = status_code
        status = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"{service} call failed{status}: {reason}")


class CredentialUnavailableError(AdapterError):
    """No usable civil-registry credential token is stored."""

    code: str = "CREDENTIAL_UNAVAILABLE"

    def __init__(self, service: str = "civil_registry"):
        self.service = service
        super().__init__(f"No active credential token for {service}")


# Census source


class CensusSourceError(VitalCheckError):
    """The census source database could not be read."""

    code: str = "CENSUS_SOURCE_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Census source {source} unavailable: {reason}")


# Schedule windows


class ScheduleError(VitalCheckError):
    """Base exception for schedule window errors."""

    code: str = "SCHEDULE_ERROR"


class InvalidScheduleWindowError(ScheduleError):
    """A schedule window item failed validation; the whole set is rejected."""

    code: str = "INVALID_SCHEDULE_WINDOW"

    def __init__(self, field: str, value: object, index: int | None = None):
        self.field = field
        self.value = value
        self.index = index
        where = f" at item {index}" if index is not None else ""
        super().__init__(f"Invalid schedule window {field}={value!r}{where}")


# Configuration


class ConfigurationError(VitalCheckError):
    """Settings could not be loaded or a required setting is missing."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Configuration error for '{key}': {reason}")
