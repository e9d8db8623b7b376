from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from src.common.errors import (
    CommandParseError,
    DeployManagerError,
    JobValidationError,
    ManifestDecodeError,
    PollTimeoutError,
    UnsupportedJobError,
    WorkClientError,
)
from src.common.models import (
    Condition,
    Job,
    JobState,
    JobType,
    RemediationStatus,
    RemediationType,
    Resource,
)
from src.common.settings import Settings
from src.manifests.generator import (
    generate_manifest_work,
    instruction_manifests,
    job_manifests,
    tag_with_work_uid,
)
from src.manifests.objects import ManifestObject, OpaqueObject, decode_manifest
from src.remediation import scaling
from src.remediation.secure import build_security_bundle, latest_remediation
from src.workclient.work import (
    manifest_diff,
    merge_patch_body,
    set_work_manifests,
    work_manifests,
    work_name,
    work_uid,
)

from .locks import ResourceLocks
from .monitor import CompletionMonitor, MonitorRegistry
from .status import update_job_resource, wait_for_applied

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    job: Job
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class JobDispatcher:
    """Turns jobs into ManifestWork operations and folds the outcome back in.

    ``client`` is the process-wide work client, constructed once at startup.
    Background completion monitors for exec jobs are started through
    ``monitors`` so the owning process can cancel and await them.
    """

    def __init__(
        self,
        client: Any,
        settings: Optional[Settings] = None,
        *,
        monitors: Optional[MonitorRegistry] = None,
        locks: Optional[ResourceLocks] = None,
    ) -> None:
        self.client = client
        self.settings = settings or Settings()
        self.monitors = monitors if monitors is not None else MonitorRegistry()
        self.locks = locks if locks is not None else ResourceLocks()
        self._job_handlers: Dict[str, Callable[[Job], Job]] = {
            JobType.CREATE_DEPLOYMENT.value: self.create_deployment,
            JobType.UPDATE_DEPLOYMENT.value: self.update_deployment,
            JobType.DELETE_DEPLOYMENT.value: self.delete_deployment,
            JobType.REPLACE_DEPLOYMENT.value: self.replace_deployment,
        }
        self._remediation_handlers: Dict[str, Callable[[Job], Job]] = {
            RemediationType.SCALE_UP.value: self.scale_deployment,
            RemediationType.SCALE_DOWN.value: self.scale_deployment,
            RemediationType.SCALE_OUT.value: self.scale_deployment,
            RemediationType.SCALE_IN.value: self.scale_deployment,
            RemediationType.REALLOCATE.value: self.delete_deployment,
            RemediationType.PATCH.value: self.patch_deployment,
            RemediationType.REPLACE.value: self.replace_deployment,
            RemediationType.SECURE.value: self.apply_security_action,
        }

    def execute(self, job: Job) -> Job:
        logger.info("Executing job %s of type %s", job.id, job.type)
        handler = self._job_handlers.get(str(job.type))
        if handler is None:
            raise UnsupportedJobError(f"job type not supported: {job.type}")
        return handler(job)

    def execute_batch(self, jobs: Iterable[Job]) -> List[BatchResult]:
        results: List[BatchResult] = []
        for job in jobs:
            try:
                results.append(BatchResult(job=self.execute(job)))
            except DeployManagerError as exc:
                logger.error("Job %s failed: %s", job.id, exc)
                results.append(BatchResult(job=job, error=exc))
            except Exception as exc:
                logger.exception("Unexpected error executing Job %s", job.id)
                self._degrade(job, "Unexpected error executing job", exc)
                results.append(BatchResult(job=job, error=exc))
        return results

    def create_deployment(self, job: Job) -> Job:
        cluster = _require_cluster(job)
        if job.instruction is None or not job.instruction.component_name:
            raise JobValidationError(f"job {job.id} has no instruction component name")
        logger.info("Creating Work for Job %s", job.id)

        job.resource = Resource(
            job_id=job.id,
            resource_name=job.instruction.component_name,
            conditions=[
                Condition.now(
                    "Progressing",
                    reason="Job Promoted",
                    message="Job promoted for execution",
                    observed_generation=1,
                )
            ],
        )
        work = generate_manifest_work(job)
        try:
            created = self.client.create(cluster, work)
        except WorkClientError as exc:
            self._degrade(job, "Error creating ManifestWork", exc)
            raise

        uid = work_uid(created)
        name = work_name(created)
        if not uid or not name:
            update_job_resource(job, created)
            return job
        logger.info("ManifestWork UID: %s", uid)

        try:
            applied = wait_for_applied(
                self.client,
                cluster,
                name,
                self.settings.apply_timeout_seconds,
                poll_interval=self.settings.poll_interval_seconds,
            )
        except PollTimeoutError as exc:
            self._degrade(job, "Error obtaining applied ManifestWork status", exc)
            raise
        update_job_resource(job, applied)

        manifests = [_decode_or_keep(m) for m in work_manifests(applied)]
        return self._apply_patch(job, cluster, name, tag_with_work_uid(manifests, uid))

    def update_deployment(self, job: Job) -> Job:
        logger.info("Updating work for Job %s", job.id)
        handler = self._remediation_handlers.get(str(job.sub_type))
        if handler is None:
            job.state = JobState.DEGRADED
            logger.error("Job %s sub type does not exist: %s", job.id, job.sub_type)
            raise UnsupportedJobError(f"job sub type does not exist: {job.sub_type}")
        return handler(job)

    def delete_deployment(self, job: Job) -> Job:
        cluster = _require_cluster(job)
        name = _require_resource_name(job)
        logger.info("Deleting deployment for Job %s", job.id)
        try:
            with self.locks.hold(cluster, name):
                self.client.delete(cluster, name)
        except WorkClientError as exc:
            self._degrade(job, "Error deleting ManifestWork", exc)
            raise
        logger.info("Successfully deleted deployment for Job %s", job.id)
        job.resource.append_conditions(
            [Condition.now("Deleted", reason="Deleted", message="Deployment deleted successfully")]
        )
        return job

    def scale_deployment(self, job: Job) -> Job:
        cluster = _require_cluster(job)
        name = _require_resource_name(job)
        sub_type = str(job.sub_type)
        with self.locks.hold(cluster, name):
            try:
                work = self.client.get(cluster, name)
            except WorkClientError as exc:
                self._degrade(job, "Error obtaining applied ManifestWork status", exc)
                raise
            before = copy.deepcopy(work_manifests(work))
            updated: List[ManifestObject] = []
            for raw in work_manifests(work):
                obj = _decode_or_keep(raw)
                mutated = scaling.scale(obj, sub_type, clamp=self.settings.clamp_replicas)
                updated.append(mutated if mutated is not None else obj)
            changes = manifest_diff(before, [m.to_dict() for m in updated])
            logger.info("Applying %s to %s/%s: %d change(s)", sub_type, cluster, name, len(changes))
            for op in changes:
                logger.debug("  %s %s", op.get("op"), op.get("path"))
            return self._apply_patch(job, cluster, name, updated)

    def patch_deployment(self, job: Job) -> Job:
        cluster = _require_cluster(job)
        name = _require_resource_name(job)
        with self.locks.hold(cluster, name):
            try:
                self.client.get(cluster, name)
            except WorkClientError as exc:
                self._degrade(job, "Error obtaining applied ManifestWork status", exc)
                raise
            return self._apply_patch(job, cluster, name, job_manifests(job))

    def replace_deployment(self, job: Job) -> Job:
        """Blue/green swap: the stored work unit's manifests are overwritten."""

        cluster = _require_cluster(job)
        name = _require_resource_name(job)
        logger.info("Replacing Work for Job %s", job.id)
        contents = job.instruction.contents if job.instruction else []
        with self.locks.hold(cluster, name):
            try:
                old = self.client.get(cluster, name)
            except WorkClientError as exc:
                self._degrade(job, "Error obtaining applied ManifestWork status", exc)
                raise
            manifests = instruction_manifests(contents, job.namespace, name, job.job_group_id)
            set_work_manifests(old, [m.to_dict() for m in manifests])
            try:
                updated = self.client.update(cluster, old)
            except WorkClientError as exc:
                self._degrade(job, "Error updating ManifestWork", exc)
                raise
        return update_job_resource(job, updated)

    def apply_security_action(self, job: Job) -> Job:
        cluster = _require_cluster(job)
        try:
            remediation = latest_remediation(job)
        except JobValidationError as exc:
            job.state = JobState.DEGRADED
            logger.error("Job %s: %s", job.id, exc)
            raise
        try:
            bundle = build_security_bundle(job, remediation)
        except (CommandParseError, JobValidationError, ManifestDecodeError) as exc:
            remediation.status = RemediationStatus.FAILED
            job.state = JobState.DEGRADED
            logger.error("Error generating security action manifests for Job %s: %s", job.id, exc)
            raise
        try:
            created = self.client.create(cluster, bundle.work)
        except WorkClientError as exc:
            remediation.status = RemediationStatus.FAILED
            self._degrade(job, "Error creating ManifestWork", exc)
            raise

        monitor = CompletionMonitor(
            self.client,
            cluster,
            work_name(created),
            locks=self.locks,
            interval=self.settings.monitor_interval_seconds,
            timeout=self.settings.monitor_timeout_seconds,
        )
        self.monitors.start(monitor)
        remediation.status = RemediationStatus.APPLIED
        return job

    def _apply_patch(self, job: Job, cluster: str, name: str, manifests: Iterable[ManifestObject]) -> Job:
        body = merge_patch_body([m.to_dict() for m in manifests])
        try:
            with self.locks.hold(cluster, name):
                patched = self.client.patch(cluster, name, body)
        except WorkClientError as exc:
            self._degrade(job, "Error patching ManifestWork", exc)
            raise
        return update_job_resource(job, patched)

    def _degrade(self, job: Job, message: str, exc: Exception) -> None:
        """Mark the job degraded and record the failure on its resource."""

        job.state = JobState.DEGRADED
        if job.resource is None:
            job.resource = Resource(job_id=job.id)
        job.resource.append_conditions(
            [Condition.now("Degraded", reason=type(exc).__name__, message=f"{message}: {exc}")]
        )
        logger.error("%s for Job %s: %s", message, job.id, exc)


def _require_cluster(job: Job) -> str:
    if not job.target.cluster_name:
        raise JobValidationError(f"job {job.id} has no target cluster")
    return job.target.cluster_name


def _require_resource_name(job: Job) -> str:
    if job.resource is None or not job.resource.resource_name:
        raise JobValidationError(f"job {job.id} has no resource name")
    return job.resource.resource_name


def _decode_or_keep(raw: Dict[str, Any]) -> ManifestObject:
    try:
        return decode_manifest(raw)
    except ManifestDecodeError as exc:
        logger.warning("Error decoding manifest, keeping it unchanged: %s", exc)
        return OpaqueObject(raw)


__all__ = ["BatchResult", "JobDispatcher"]
