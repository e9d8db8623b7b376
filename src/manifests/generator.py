from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

import jinja2

from src.common.errors import ManifestDecodeError
from src.common.models import Content, Job
from src.workclient.work import build_manifest_work

from .objects import ManifestObject, decode_manifest
from .templates import render

logger = logging.getLogger(__name__)

COMPONENT_ANNOTATION = "app.cognifog.eu/component"
INSTANCE_ANNOTATION = "app.cognifog.eu/instance"
MANIFEST_UID_ANNOTATION = "jobmanager.cognifog.eu/manifest"

EXEC_JOB_IMAGE = "bitnami/kubectl:latest"
EXEC_JOB_CONTAINER = "kubectl"
EXEC_JOB_BACKOFF_LIMIT = 4


def _render_manifest(template_name: str, **context: Any) -> ManifestObject:
    try:
        rendered = render(template_name, **context)
    except jinja2.TemplateError as exc:
        raise ManifestDecodeError(f"error rendering {template_name} template: {exc}") from exc
    return decode_manifest(rendered)


def namespace_manifest(namespace: str) -> ManifestObject:
    return _render_manifest("namespace", namespace=namespace)


def service_account_manifest(namespace: str, name: str) -> ManifestObject:
    return _render_manifest("service_account", namespace=namespace, service_account_name=name)


def role_manifest(namespace: str, name: str) -> ManifestObject:
    return _render_manifest("role", namespace=namespace, role_name=name)


def role_binding_manifest(namespace: str, name: str, role_name: str, service_account_name: str) -> ManifestObject:
    return _render_manifest(
        "role_binding",
        namespace=namespace,
        role_binding_name=name,
        role_name=role_name,
        service_account_name=service_account_name,
    )


def exec_job_manifest(
    target_pod: str,
    target_container: str,
    command: Sequence[str],
    namespace: str,
    service_account_name: str,
    job_name: str,
    *,
    image: str = EXEC_JOB_IMAGE,
    backoff_limit: int = EXEC_JOB_BACKOFF_LIMIT,
) -> ManifestObject:
    """Batch Job running ``kubectl exec <pod> -c <container> -- <command>``."""

    return _render_manifest(
        "exec_job",
        job_name=job_name,
        namespace=namespace,
        service_account_name=service_account_name,
        container_name=EXEC_JOB_CONTAINER,
        image=image,
        target_pod=target_pod,
        target_container=target_container,
        command=list(command),
        backoff_limit=backoff_limit,
    )


def annotate(obj: ManifestObject, namespace: str, component: Optional[str], instance: Optional[str]) -> ManifestObject:
    obj.namespace = namespace
    obj.set_annotation(COMPONENT_ANNOTATION, component or "")
    obj.set_annotation(INSTANCE_ANNOTATION, instance or "")
    return obj


def instruction_manifests(
    contents: Iterable[Content],
    namespace: str,
    component: Optional[str],
    instance: Optional[str],
) -> List[ManifestObject]:
    manifests: List[ManifestObject] = []
    for content in contents:
        try:
            obj = decode_manifest(content.yaml)
        except ManifestDecodeError as exc:
            logger.warning("Skipping content %r: %s", content.name, exc)
            continue
        manifests.append(annotate(obj, namespace, component, instance))
    return manifests


def job_manifests(job: Job) -> List[ManifestObject]:
    """Namespace manifest followed by every decodable instruction content."""

    resource_name = job.resource.resource_name if job.resource else None
    contents = job.instruction.contents if job.instruction else []
    manifests = [namespace_manifest(job.namespace)]
    manifests.extend(instruction_manifests(contents, job.namespace, resource_name, job.job_group_id))
    return manifests


def generate_manifest_work(job: Job) -> Dict[str, Any]:
    resource_name = job.resource.resource_name if job.resource else ""
    manifests = job_manifests(job)
    for manifest in manifests:
        logger.debug("Generated %s manifest %s", manifest.kind, manifest.name)
    return build_manifest_work(
        generate_name=f"{resource_name}-",
        namespace=job.target.cluster_name,
        manifests=[m.to_dict() for m in manifests],
    )


def tag_with_work_uid(manifests: Iterable[ManifestObject], work_uid: str) -> List[ManifestObject]:
    tagged: List[ManifestObject] = []
    for manifest in manifests:
        if manifest.kind == "Namespace":
            logger.debug("Skipping Namespace manifest")
        else:
            manifest.set_annotation(MANIFEST_UID_ANNOTATION, work_uid)
        tagged.append(manifest)
    return tagged


__all__ = [
    "COMPONENT_ANNOTATION",
    "EXEC_JOB_IMAGE",
    "INSTANCE_ANNOTATION",
    "MANIFEST_UID_ANNOTATION",
    "annotate",
    "exec_job_manifest",
    "generate_manifest_work",
    "instruction_manifests",
    "job_manifests",
    "namespace_manifest",
    "role_binding_manifest",
    "role_manifest",
    "service_account_manifest",
    "tag_with_work_uid",
]
