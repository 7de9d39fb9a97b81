"""
vitalcheck_batch.models -- ORM models for run state, subjects and configuration.

Architecture: vitalcheck_batch/models. Imports from vitalcheck_kernel.db.base only.
"""

from vitalcheck_batch.models.credential import CredentialTokenModel
from vitalcheck_batch.models.run import LogDetailModel, LogRunModel, RunStateModel
from vitalcheck_batch.models.schedule import ScheduleWindowModel
from vitalcheck_batch.models.subject import SubjectModel

__all__ = [
    "CredentialTokenModel",
    "LogDetailModel",
    "LogRunModel",
    "RunStateModel",
    "ScheduleWindowModel",
    "SubjectModel",
]
