"""
VitalCheckOrchestrator -- DI container for the run engine.

Contract:
    Wires the store, the census source, the registry clients and the
    verification checks into a RunExecutor, and optionally a TriggerScheduler.
    Single place where all run dependencies are composed.

Architecture: vitalcheck_batch (top-level).  The canonical entry point for
    the CLI and for embedding the engine.

Invariants enforced:
    - Clock injection: every service receives the same Clock.
    - One RunLease per orchestrator, shared by manual and scheduled runs.
    - Remote endpoints are required only when a run needs them, so
      ``status`` and ``history`` work without registry URLs.
"""

from __future__ import annotations

from typing import Callable

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from vitalcheck_config.schema import VitalCheckSettings
from vitalcheck_kernel.db.engine import build_engine, get_session_factory, init_engine_from_url
from vitalcheck_kernel.domain.clock import Clock, SystemClock
from vitalcheck_kernel.logging_config import get_logger

from vitalcheck_batch.domain.types import RunStatusReport
from vitalcheck_batch.services.executor import RunExecutor, build_status_report
from vitalcheck_batch.services.lease import RunLease
from vitalcheck_batch.services.retry import RetryPolicy
from vitalcheck_batch.services.scheduler import TriggerScheduler
from vitalcheck_batch.services.store import RunStore
from vitalcheck_batch.tasks.base import CheckRegistry
from vitalcheck_batch.tasks.civil_registry_tasks import CIVIL_REGISTRY_CHECK, CivilRegistryCheckTask
from vitalcheck_batch.tasks.population_tasks import POPULATION_CHECK, PopulationCheckTask
from vitalcheck_services.census import CensusSource
from vitalcheck_services.civil_registry import CivilRegistryClient
from vitalcheck_services.population import PopulationRegistryClient

logger = get_logger("batch.orchestrator")


def _default_check_registry(
    population: PopulationRegistryClient,
    civil_registry: CivilRegistryClient,
) -> CheckRegistry:
    """Create a CheckRegistry pre-loaded with both registry checks."""
    registry = CheckRegistry()
    registry.register(PopulationCheckTask(population))
    registry.register(CivilRegistryCheckTask(civil_registry))
    return registry


class VitalCheckOrchestrator:
    """DI container for the run engine.

    Contract:
        - ``from_settings()`` initializes the primary engine and wires everything.
        - ``create_executor()`` returns a RunExecutor sharing this lease.
        - ``create_scheduler()`` returns a TriggerScheduler for background use.

    Non-goals:
        - Does NOT start the scheduler automatically -- caller decides.
    """

    def __init__(
        self,
        settings: VitalCheckSettings,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        census_engine: Engine | None = None,
        population_client: PopulationRegistryClient | None = None,
        civil_registry_client: CivilRegistryClient | None = None,
    ) -> None:
        self._settings = settings
        self._clock = clock or SystemClock()
        self._store = RunStore(session_factory, clock=self._clock)
        self._census_engine = census_engine
        self._population_client = population_client
        self._civil_registry_client = civil_registry_client
        self._lease = RunLease()
        self._executor: RunExecutor | None = None

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_settings(
        cls,
        settings: VitalCheckSettings,
        clock: Clock | None = None,
    ) -> VitalCheckOrchestrator:
        """Initialize the primary store from ``settings`` and wire the engine."""
        db = settings.database
        init_engine_from_url(db.url, echo=db.echo, pool_size=db.pool_size)
        return cls(settings, get_session_factory(), clock=clock)

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def settings(self) -> VitalCheckSettings:
        return self._settings

    @property
    def store(self) -> RunStore:
        return self._store

    @property
    def lease(self) -> RunLease:
        return self._lease

    def status(self) -> RunStatusReport:
        return build_status_report(self._store, self._lease.is_held)

    # -------------------------------------------------------------------------
    # Builders
    # -------------------------------------------------------------------------

    def create_executor(self) -> RunExecutor:
        """Return the RunExecutor, building remote collaborators on first use.

        Raises:
            ConfigurationError: If a registry or census URL is not configured.
        """
        if self._executor is not None:
            return self._executor

        settings = self._settings
        census = CensusSource(
            self._census_engine or build_engine(settings.require("census.url")),
            table_name=settings.census.table,
            schema=settings.census.schema,
            cid_length=settings.census.cid_length,
        )
        population = self._population_client or PopulationRegistryClient(
            settings.require("population.url"),
            timeout_seconds=settings.population.timeout_seconds,
        )
        civil_registry = self._civil_registry_client or CivilRegistryClient(
            settings.require("civil_registry.api_url"),
            settings.civil_registry.job_id,
            token_check_url=settings.require("civil_registry.token_check_url"),
            timeout_seconds=settings.civil_registry.timeout_seconds,
        )
        checks = _default_check_registry(population, civil_registry)

        self._executor = RunExecutor(
            store=self._store,
            census=census,
            population_check=checks.get(POPULATION_CHECK),
            civil_check=checks.get(CIVIL_REGISTRY_CHECK),
            credential_checker=civil_registry.check_token,
            clock=self._clock,
            lease=self._lease,
            policy=RetryPolicy.from_settings(settings.retry),
        )
        logger.info("executor_created", extra={"checks": list(checks.list_checks())})
        return self._executor

    def create_scheduler(self) -> TriggerScheduler:
        """Return a TriggerScheduler driving this orchestrator's executor."""
        scheduler_settings = self._settings.scheduler
        return TriggerScheduler(
            store=self._store,
            executor=self.create_executor(),
            clock=self._clock,
            timezone=scheduler_settings.timezone,
            tick_interval_seconds=scheduler_settings.tick_interval_seconds,
            initial_delay_seconds=scheduler_settings.initial_delay_seconds,
        )
