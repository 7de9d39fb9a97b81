"""
Tests for vitalcheck_batch.orchestrator -- dependency wiring.
"""

from dataclasses import replace
from unittest.mock import Mock

import pytest

from vitalcheck_config.schema import (
    CensusSettings,
    CivilRegistrySettings,
    PopulationSettings,
    RetrySettings,
    SchedulerSettings,
    VitalCheckSettings,
)
from vitalcheck_kernel.exceptions import ConfigurationError

from vitalcheck_batch.domain.types import ProcessResult
from vitalcheck_batch.orchestrator import VitalCheckOrchestrator, _default_check_registry
from vitalcheck_batch.services.executor import RunExecutor
from vitalcheck_batch.services.scheduler import TriggerScheduler
from vitalcheck_batch.tasks import CIVIL_REGISTRY_CHECK, POPULATION_CHECK


@pytest.fixture
def settings():
    return VitalCheckSettings(
        census=CensusSettings(url="sqlite://", schema=None),
        population=PopulationSettings(url="https://checkpop.test/api"),
        civil_registry=CivilRegistrySettings(
            api_url="https://lk2.test",
            job_id="JOB-1",
            token_check_url="https://lk2.test/token",
        ),
        retry=RetrySettings(max_attempts=2, delay_seconds=5),
        scheduler=SchedulerSettings(timezone="UTC", tick_interval_seconds=30),
    )


@pytest.fixture
def orchestrator(settings, session_factory, clock, engine):
    return VitalCheckOrchestrator(
        settings,
        session_factory,
        clock=clock,
        census_engine=engine,
        population_client=Mock(),
        civil_registry_client=Mock(),
    )


class TestStatus:
    def test_status_without_registry_settings(self, session_factory, clock):
        orch = VitalCheckOrchestrator(VitalCheckSettings(), session_factory, clock=clock)
        report = orch.status()
        assert report.is_processing is False
        assert report.phase is None

    def test_status_reflects_lease(self, orchestrator):
        orchestrator.store.ensure_state()
        with orchestrator.lease.acquire("test"):
            assert orchestrator.status().is_processing is True
        assert orchestrator.status().phase == 0


class TestCreateExecutor:
    def test_wires_executor(self, orchestrator):
        executor = orchestrator.create_executor()
        assert isinstance(executor, RunExecutor)
        assert orchestrator.create_executor() is executor

    def test_executor_shares_lease(self, orchestrator):
        executor = orchestrator.create_executor()
        with orchestrator.lease.acquire("scheduler"):
            assert executor.is_running
            assert executor.run_process() == ProcessResult.already_running()

    @pytest.mark.parametrize(
        "section,field,key",
        [
            ("census", "url", "census.url"),
            ("population", "url", "population.url"),
            ("civil_registry", "api_url", "civil_registry.api_url"),
            ("civil_registry", "token_check_url", "civil_registry.token_check_url"),
        ],
    )
    def test_missing_endpoint_raises(self, settings, session_factory, clock, section, field, key):
        settings = replace(settings, **{section: replace(getattr(settings, section), **{field: None})})
        orch = VitalCheckOrchestrator(settings, session_factory, clock=clock)
        with pytest.raises(ConfigurationError) as exc_info:
            orch.create_executor()
        assert exc_info.value.key == key

    def test_injected_clients_skip_url_checks(self, session_factory, clock, engine):
        orch = VitalCheckOrchestrator(
            VitalCheckSettings(),
            session_factory,
            clock=clock,
            census_engine=engine,
            population_client=Mock(),
            civil_registry_client=Mock(),
        )
        assert isinstance(orch.create_executor(), RunExecutor)

    def test_default_check_registry(self):
        registry = _default_check_registry(Mock(), Mock())
        assert registry.list_checks() == (CIVIL_REGISTRY_CHECK, POPULATION_CHECK)


class TestCreateScheduler:
    def test_scheduler_uses_settings(self, orchestrator):
        scheduler = orchestrator.create_scheduler()
        assert isinstance(scheduler, TriggerScheduler)
        assert scheduler.is_running is False

    def test_bad_timezone(self, settings, session_factory, clock, engine):
        settings = replace(settings, scheduler=SchedulerSettings(timezone="Nowhere/Land"))
        orch = VitalCheckOrchestrator(
            settings, session_factory, clock=clock, census_engine=engine,
            population_client=Mock(), civil_registry_client=Mock(),
        )
        with pytest.raises(ConfigurationError):
            orch.create_scheduler()
