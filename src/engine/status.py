from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union

from src.common.errors import PollCancelledError, PollTimeoutError, WorkClientError
from src.common.models import Condition, Job, JobState, Resource
from src.workclient.work import work_conditions, work_name, work_uid

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.5

_STATE_BY_CONDITION = {
    "Progressing": JobState.PROGRESSING,
    "Available": JobState.FINISHED,
    "Applied": JobState.FINISHED,
    "Degraded": JobState.DEGRADED,
}


def wait_for_applied(
    client: Any,
    namespace: str,
    name: str,
    timeout: float,
    *,
    poll_interval: float = POLL_INTERVAL_SECONDS,
    cancel: Optional[threading.Event] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, Any]:
    """Poll a work unit until it reports at least one status condition.

    Fetch errors are logged and retried until ``timeout`` seconds elapse,
    at which point :class:`PollTimeoutError` is raised. Setting ``cancel``
    aborts the wait with :class:`PollCancelledError`.
    """

    deadline = clock() + timeout
    while True:
        try:
            work = client.get(namespace, name)
        except WorkClientError as exc:
            logger.info("Error obtaining applied ManifestWork %s/%s status: %s", namespace, name, exc)
            work = None
        if work and work_conditions(work):
            return work

        remaining = deadline - clock()
        if remaining <= 0:
            raise PollTimeoutError(
                f"timed out after {timeout:.1f}s waiting for ManifestWork {namespace}/{name} status"
            )
        delay = min(poll_interval, remaining)
        if cancel is not None:
            if cancel.wait(delay):
                raise PollCancelledError(f"wait for ManifestWork {namespace}/{name} cancelled")
        else:
            sleep(delay)


ConditionLike = Union[Condition, Mapping[str, Any]]


def map_state(conditions: Sequence[ConditionLike]) -> JobState:
    """Job state derived from the most recent condition only."""

    if not conditions:
        return JobState.PROGRESSING
    latest = conditions[-1]
    condition_type = latest.type if isinstance(latest, Condition) else latest.get("type")
    return _STATE_BY_CONDITION.get(str(condition_type), JobState.PROGRESSING)


def update_job_resource(job: Job, work: Optional[Mapping[str, Any]]) -> Job:
    """Fold a fetched work unit into the job's resource record and state."""

    if job.resource is None:
        job.resource = Resource(job_id=job.id)
    if work is not None:
        conditions = [Condition.model_validate(c) for c in work_conditions(work)]
        job.state = map_state(conditions)
        job.resource.resource_uid = work_uid(work) or job.resource.resource_uid
        job.resource.resource_name = work_name(work) or job.resource.resource_name
        job.resource.append_conditions(conditions)
    else:
        job.resource.resource_name = ""
        job.resource.append_conditions(
            [Condition.now("Applied", reason="Deleted", message="Resource has been deleted")]
        )
    logger.debug("Job %s resource: %r", job.id, job.resource)
    return job


__all__ = ["POLL_INTERVAL_SECONDS", "map_state", "update_job_resource", "wait_for_applied"]
