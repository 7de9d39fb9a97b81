"""
VitalCheck settings schema.

Typed, frozen views of everything the batch reads from configuration.  YAML
files and environment variables are parsed into these types by the loader;
nothing else in the system reads raw dicts or ``os.environ``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields

from vitalcheck_kernel.exceptions import ConfigurationError

# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    """Primary state store (subjects, run state, logs, windows, tokens)."""

    url: str = "sqlite:///vitalcheck.db"
    echo: bool = False
    pool_size: int = 5


@dataclass(frozen=True)
class CensusSettings:
    """Secondary census source the subject list is pulled from."""

    url: str | None = None
    schema: str | None = "dbo"
    table: str = "MAS_MEMBERS"
    cid_length: int = 13


# ---------------------------------------------------------------------------
# External registries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PopulationSettings:
    """Population-registry ("checkpop") endpoint."""

    url: str | None = None
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class CivilRegistrySettings:
    """Civil-registry (LK2) endpoint and its credential check."""

    api_url: str | None = None
    job_id: str | None = None
    token_check_url: str | None = None
    timeout_seconds: float = 30.0


# ---------------------------------------------------------------------------
# Run behaviour
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RetrySettings:
    """Per-row retry, convergence rounds and login polling."""

    max_attempts: int = 3
    delay_seconds: float = 60.0
    max_rounds: int = 5
    population_round_delay_seconds: float = 0.0
    civil_round_delay_seconds: float = 60.0
    login_poll_seconds: float = 3.0


@dataclass(frozen=True)
class SchedulerSettings:
    tick_interval_seconds: float = 60.0
    initial_delay_seconds: float = 5.0
    timezone: str = "UTC"


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"
    format: str = "console"  # console | json


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VitalCheckSettings:
    """Root settings object handed to the orchestrator."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    census: CensusSettings = field(default_factory=CensusSettings)
    population: PopulationSettings = field(default_factory=PopulationSettings)
    civil_registry: CivilRegistrySettings = field(default_factory=CivilRegistrySettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @classmethod
    def section_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def require(self, dotted_key: str) -> str:
        """Return a setting that must be present at use time.

        Raises:
            ConfigurationError: If the value is missing or empty.
        """
        section_name, _, key = dotted_key.partition(".")
        section = getattr(self, section_name, None)
        value = getattr(section, key, None) if section is not None else None
        if value is None or value == "":
            raise ConfigurationError(dotted_key, "required setting is not configured")
        return value


# ---------------------------------------------------------------------------
# Schedule windows
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScheduleWindowDef:
    """Validated schedule window input, ready to persist.

    ``start_time`` is normalized to ``HH:MM:SS``.
    """

    month: int
    day: int
    start_time: str
    duration_hours: int

    def to_input(self) -> dict[str, object]:
        """Render in the operator input shape (``startTime`` as ``HH:MM``)."""
        return {
            "month": self.month,
            "day": self.day,
            "startTime": self.start_time[:5],
            "durationHours": self.duration_hours,
        }
