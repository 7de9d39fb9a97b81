"""
vitalcheck_batch.tasks -- Verification check protocol, registry and checks.
"""

from vitalcheck_batch.tasks.base import CheckRegistry, VerificationCheck
from vitalcheck_batch.tasks.civil_registry_tasks import (
    CIVIL_REGISTRY_CHECK,
    CivilRegistryCheckTask,
)
from vitalcheck_batch.tasks.population_tasks import POPULATION_CHECK, PopulationCheckTask

__all__ = [
    "CIVIL_REGISTRY_CHECK",
    "CheckRegistry",
    "CivilRegistryCheckTask",
    "POPULATION_CHECK",
    "PopulationCheckTask",
    "VerificationCheck",
]
