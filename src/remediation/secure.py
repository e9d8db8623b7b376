from __future__ import annotations

import shlex
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from src.common.errors import CommandParseError, JobValidationError
from src.common.models import Job, Remediation
from src.manifests import generator
from src.workclient.work import build_manifest_work

WELL_KNOWN_STATUS = "WellKnownStatus"
SERVER_SIDE_APPLY = "ServerSideApply"


@dataclass
class SecurityBundle:
    work: Dict[str, Any]
    job_name: str
    namespace: str
    remediation: Remediation

    @property
    def manifests(self) -> List[Dict[str, Any]]:
        return self.work["spec"]["workload"]["manifests"]


def parse_command(command: Optional[str]) -> List[str]:
    """Split a command string into argv tokens using shell quoting rules."""

    if command is None or not command.strip():
        raise CommandParseError("remediation command is empty")
    try:
        return shlex.split(command)
    except ValueError as exc:
        raise CommandParseError(f"error parsing command {command!r}: {exc}") from exc


def latest_remediation(job: Job) -> Remediation:
    if job.resource is None or not job.resource.remediations:
        raise JobValidationError("no remediations found")
    remediation = job.resource.remediations[-1]
    if remediation.remediation_target is None:
        raise JobValidationError("latest remediation has no target")
    return remediation


def build_security_bundle(job: Job, remediation: Remediation, *, now: Optional[float] = None) -> SecurityBundle:
    """ServiceAccount, Role, RoleBinding and exec Job for an in-container action.

    The work unit requests well-known status feedback for the batch Job so
    the completion monitor can read its succeeded/failed pod counts.
    """

    target = remediation.remediation_target
    if target is None:
        raise JobValidationError("latest remediation has no target")
    if not target.pod or not target.container:
        raise JobValidationError("remediation target requires pod and container")
    command = parse_command(target.command)

    resource_name = job.resource.resource_name if job.resource else None
    if not resource_name:
        raise JobValidationError("job has no resource name")
    namespace = job.namespace
    timestamp = int(now if now is not None else time.time())
    job_name = f"{resource_name}-job-{timestamp}"
    sa_name = f"{resource_name}-job-sa"
    role_name = f"{resource_name}-job-role"
    role_binding_name = f"{resource_name}-job-rolebinding"

    manifests = [
        generator.service_account_manifest(namespace, sa_name),
        generator.role_manifest(namespace, role_name),
        generator.role_binding_manifest(namespace, role_binding_name, role_name, sa_name),
        generator.exec_job_manifest(target.pod, target.container, command, namespace, sa_name, job_name),
    ]
    manifest_config = {
        "resourceIdentifier": {
            "group": "batch",
            "resource": "jobs",
            "namespace": namespace,
            "name": job_name,
        },
        "feedbackRules": [{"type": WELL_KNOWN_STATUS}],
        "updateStrategy": {"type": SERVER_SIDE_APPLY},
    }
    work = build_manifest_work(
        generate_name=f"{resource_name}-job-",
        namespace=job.target.cluster_name,
        manifests=[m.to_dict() for m in manifests],
        manifest_configs=[manifest_config],
    )
    return SecurityBundle(work=work, job_name=job_name, namespace=namespace, remediation=remediation)


__all__ = ["SecurityBundle", "build_security_bundle", "latest_remediation", "parse_command"]
