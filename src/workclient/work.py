from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

import jsonpatch

WORK_GROUP = "work.open-cluster-management.io"
WORK_VERSION = "v1"
WORK_PLURAL = "manifestworks"
WORK_KIND = "ManifestWork"
WORK_API_VERSION = f"{WORK_GROUP}/{WORK_VERSION}"


def build_manifest_work(
    *,
    namespace: str,
    manifests: Sequence[Mapping[str, Any]],
    name: Optional[str] = None,
    generate_name: Optional[str] = None,
    manifest_configs: Optional[Sequence[Mapping[str, Any]]] = None,
) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {"namespace": namespace}
    if name:
        metadata["name"] = name
    elif generate_name:
        metadata["generateName"] = generate_name
    spec: Dict[str, Any] = {"workload": {"manifests": [dict(m) for m in manifests]}}
    if manifest_configs:
        spec["manifestConfigs"] = [dict(c) for c in manifest_configs]
    return {
        "apiVersion": WORK_API_VERSION,
        "kind": WORK_KIND,
        "metadata": metadata,
        "spec": spec,
    }


def work_metadata(work: Mapping[str, Any]) -> Mapping[str, Any]:
    metadata = work.get("metadata")
    return metadata if isinstance(metadata, Mapping) else {}


def work_name(work: Mapping[str, Any]) -> str:
    return str(work_metadata(work).get("name") or "")


def work_namespace(work: Mapping[str, Any]) -> str:
    return str(work_metadata(work).get("namespace") or "")


def work_uid(work: Mapping[str, Any]) -> str:
    return str(work_metadata(work).get("uid") or "")


def work_status(work: Mapping[str, Any]) -> Mapping[str, Any]:
    status = work.get("status")
    return status if isinstance(status, Mapping) else {}


def work_conditions(work: Optional[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    if not work:
        return []
    conditions = work_status(work).get("conditions")
    if not isinstance(conditions, list):
        return []
    return [dict(c) for c in conditions if isinstance(c, Mapping)]


def work_manifests(work: Mapping[str, Any]) -> List[Dict[str, Any]]:
    spec = work.get("spec")
    workload = spec.get("workload") if isinstance(spec, Mapping) else None
    manifests = workload.get("manifests") if isinstance(workload, Mapping) else None
    if not isinstance(manifests, list):
        return []
    return [dict(m) for m in manifests if isinstance(m, Mapping)]


def set_work_manifests(work: Dict[str, Any], manifests: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    spec = work.setdefault("spec", {})
    workload = spec.setdefault("workload", {})
    workload["manifests"] = [dict(m) for m in manifests]
    return work


def merge_patch_body(manifests: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    """Merge patch replacing the workload manifest list."""

    return {"spec": {"workload": {"manifests": [dict(m) for m in manifests]}}}


def manifest_diff(before: Sequence[Mapping[str, Any]], after: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """JSON patch operations turning one manifest list into another."""

    return list(jsonpatch.make_patch(list(before), list(after)))


def resource_feedback(work: Mapping[str, Any]) -> List[Dict[str, Any]]:
    resource_status = work_status(work).get("resourceStatus")
    manifests = resource_status.get("manifests") if isinstance(resource_status, Mapping) else None
    if not isinstance(manifests, list):
        return []
    return [dict(m) for m in manifests if isinstance(m, Mapping)]


__all__ = [
    "WORK_API_VERSION",
    "WORK_GROUP",
    "WORK_KIND",
    "WORK_PLURAL",
    "WORK_VERSION",
    "build_manifest_work",
    "manifest_diff",
    "merge_patch_body",
    "resource_feedback",
    "set_work_manifests",
    "work_conditions",
    "work_manifests",
    "work_name",
    "work_namespace",
    "work_uid",
]
