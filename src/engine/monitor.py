from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from src.common.errors import FeedbackError, WorkClientError
from src.workclient.work import resource_feedback

from .locks import ResourceLocks

logger = logging.getLogger(__name__)

MONITOR_INTERVAL_SECONDS = 30.0
MONITOR_TIMEOUT_SECONDS = 600.0


class MonitorState(str, Enum):
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    TIMED_OUT = "TimedOut"
    CANCELLED = "Cancelled"


@dataclass(frozen=True)
class KubernetesJobStatus:
    succeeded: int = 0
    failed: int = 0


def job_status_from_work(work: Optional[Mapping[str, Any]]) -> KubernetesJobStatus:
    """Succeeded/failed pod counts fed back for the embedded batch Job."""

    if not work:
        raise FeedbackError("ManifestWork is empty")
    for manifest in resource_feedback(work):
        meta = manifest.get("resourceMeta") or {}
        if meta.get("group") != "batch" or meta.get("resource") != "jobs":
            continue
        counts = {"JobSucceeded": 0, "JobFailed": 0}
        feedback = manifest.get("statusFeedback") or {}
        for value in feedback.get("values") or []:
            name = value.get("name")
            if name not in counts:
                continue
            integer = (value.get("fieldValue") or {}).get("integer")
            if not isinstance(integer, int) or isinstance(integer, bool):
                raise FeedbackError(f"expected integer value for {name}, got {integer!r}")
            counts[name] = integer
        return KubernetesJobStatus(succeeded=counts["JobSucceeded"], failed=counts["JobFailed"])
    raise FeedbackError("Job resource not found in ManifestWork status")


class CompletionMonitor:
    """Watch one exec-job work unit and delete it once it settles.

    Polls every ``interval`` seconds until success or failure feedback
    appears, or ``timeout`` seconds pass; the work unit is deleted in each
    of those cases. Delete errors are logged and never retried.
    """

    def __init__(
        self,
        client: Any,
        cluster: str,
        work_name: str,
        *,
        locks: Optional[ResourceLocks] = None,
        interval: float = MONITOR_INTERVAL_SECONDS,
        timeout: float = MONITOR_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.cluster = cluster
        self.work_name = work_name
        self.locks = locks if locks is not None else ResourceLocks()
        self.interval = interval
        self.timeout = timeout
        self._clock = clock
        self._cancel = threading.Event()
        self.state = MonitorState.RUNNING

    @property
    def key(self) -> str:
        return f"{self.cluster}/{self.work_name}"

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def run(self) -> MonitorState:
        deadline = self._clock() + self.timeout
        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.warning("Timeout reached while waiting for Job %s to complete", self.work_name)
                self._delete()
                return self._finish(MonitorState.TIMED_OUT)
            if self._cancel.wait(min(self.interval, remaining)):
                logger.info("Monitor for %s cancelled; leaving ManifestWork in place", self.key)
                return self._finish(MonitorState.CANCELLED)
            if self._clock() >= deadline:
                continue

            state = self.check()
            if state is not MonitorState.RUNNING:
                self._delete()
                return self._finish(state)

    def check(self) -> MonitorState:
        """One poll tick: fetch the work unit and classify its feedback."""

        try:
            work = self.client.get(self.cluster, self.work_name)
        except WorkClientError as exc:
            logger.warning("Error retrieving ManifestWork %s: %s", self.key, exc)
            return MonitorState.RUNNING
        try:
            status = job_status_from_work(work)
        except FeedbackError as exc:
            logger.info("Error retrieving Job status for %s: %s", self.key, exc)
            return MonitorState.RUNNING
        if status.succeeded > 0:
            logger.info("Job %s succeeded", self.work_name)
            return MonitorState.SUCCEEDED
        if status.failed > 0:
            logger.warning("Job %s failed", self.work_name)
            return MonitorState.FAILED
        logger.info("Job %s is still running...", self.work_name)
        return MonitorState.RUNNING

    def _delete(self) -> bool:
        try:
            with self.locks.hold(self.cluster, self.work_name):
                self.client.delete(self.cluster, self.work_name)
        except WorkClientError as exc:
            logger.error("Error deleting ManifestWork %s: %s", self.key, exc)
            return False
        logger.info("Deleted ManifestWork %s", self.key)
        return True

    def _finish(self, state: MonitorState) -> MonitorState:
        self.state = state
        return state


class MonitorRegistry:
    """Tracks background completion monitors so shutdown can cancel and await them."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._threads: Dict[str, threading.Thread] = {}
        self._monitors: Dict[str, CompletionMonitor] = {}

    def start(self, monitor: CompletionMonitor) -> threading.Thread:
        thread = threading.Thread(
            target=self._run,
            args=(monitor,),
            name=f"monitor-{monitor.key}",
            daemon=True,
        )
        with self._lock:
            self._prune()
            self._threads[monitor.key] = thread
            self._monitors[monitor.key] = monitor
        thread.start()
        return thread

    def _run(self, monitor: CompletionMonitor) -> None:
        try:
            state = monitor.run()
        except Exception:  # pragma: no cover - unexpected monitor crash
            logger.exception("Completion monitor %s crashed", monitor.key)
            return
        logger.info("Completion monitor %s finished: %s", monitor.key, state.value)

    def _prune(self) -> None:
        finished = [key for key, thread in self._threads.items() if not thread.is_alive()]
        for key in finished:
            self._threads.pop(key, None)
            self._monitors.pop(key, None)

    def active(self) -> List[CompletionMonitor]:
        with self._lock:
            return [self._monitors[key] for key, thread in self._threads.items() if thread.is_alive()]

    def cancel_all(self) -> None:
        with self._lock:
            monitors = list(self._monitors.values())
        for monitor in monitors:
            monitor.cancel()

    def join_all(self, timeout: Optional[float] = None) -> bool:
        """Wait for every monitor thread; ``False`` if any is still alive."""

        with self._lock:
            threads = list(self._threads.values())
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
        return not any(thread.is_alive() for thread in threads)

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        self.cancel_all()
        return self.join_all(timeout)


__all__ = [
    "CompletionMonitor",
    "KubernetesJobStatus",
    "MONITOR_INTERVAL_SECONDS",
    "MONITOR_TIMEOUT_SECONDS",
    "MonitorRegistry",
    "MonitorState",
    "job_status_from_work",
]
