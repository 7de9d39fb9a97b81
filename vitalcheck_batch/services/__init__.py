"""
vitalcheck_batch.services -- Store, retry engine, run lease, executor and scheduler.
"""

from vitalcheck_batch.services.executor import RunExecutor
from vitalcheck_batch.services.lease import RunLease
from vitalcheck_batch.services.retry import (
    RetryPolicy,
    process_rows,
    retry_call,
    retry_until_done,
)
from vitalcheck_batch.services.scheduler import TriggerScheduler
from vitalcheck_batch.services.store import RunStore

__all__ = [
    "RetryPolicy",
    "RunExecutor",
    "RunLease",
    "RunStore",
    "TriggerScheduler",
    "process_rows",
    "retry_call",
    "retry_until_done",
]
