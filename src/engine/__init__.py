"""Job execution engine: dispatch, status polling and completion monitoring."""

from .dispatcher import BatchResult, JobDispatcher
from .locks import ResourceLocks
from .monitor import CompletionMonitor, MonitorRegistry, MonitorState
from .status import map_state, update_job_resource, wait_for_applied

__all__ = [
    "BatchResult",
    "CompletionMonitor",
    "JobDispatcher",
    "MonitorRegistry",
    "MonitorState",
    "ResourceLocks",
    "map_state",
    "update_job_resource",
    "wait_for_applied",
]
