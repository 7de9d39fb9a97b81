"""
vitalcheck_services -- External collaborators of the run engine.

The census source reader and the two registry clients.  Nothing here knows
about phases or retries; each call returns a tagged result, and a registry
call given a false run predicate returns ``Cancelled`` without sending.
"""

from vitalcheck_services.census import CensusSource
from vitalcheck_services.civil_registry import CivilRegistryClient
from vitalcheck_services.population import PopulationRegistryClient
from vitalcheck_services.types import (
    AdapterResult,
    Cancelled,
    CensusRecord,
    CivilRegistryRecord,
    PopulationCheck,
    Resolved,
    TransportFailure,
)

__all__ = [
    "AdapterResult",
    "Cancelled",
    "CensusRecord",
    "CensusSource",
    "CivilRegistryClient",
    "CivilRegistryRecord",
    "PopulationCheck",
    "PopulationRegistryClient",
    "Resolved",
    "TransportFailure",
]
