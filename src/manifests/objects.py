from __future__ import annotations

import copy
from typing import Any, Dict, List, Mapping, Optional, Type, Union

import yaml

from src.common.errors import ManifestDecodeError


class ManifestObject:
    """Decoded resource manifest with generic metadata access.

    Every variant, including :class:`OpaqueObject`, supports namespace and
    annotation mutation so callers never need to know the concrete kind.
    """

    kind_name: Optional[str] = None

    def __init__(self, body: Dict[str, Any]) -> None:
        self.body = body

    @property
    def kind(self) -> str:
        return str(self.body.get("kind", ""))

    @property
    def api_version(self) -> str:
        return str(self.body.get("apiVersion", ""))

    @property
    def metadata(self) -> Dict[str, Any]:
        metadata = self.body.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}
            self.body["metadata"] = metadata
        return metadata

    @property
    def name(self) -> Optional[str]:
        return self.metadata.get("name")

    @property
    def namespace(self) -> Optional[str]:
        return self.metadata.get("namespace")

    @namespace.setter
    def namespace(self, value: str) -> None:
        self.metadata["namespace"] = value

    @property
    def annotations(self) -> Dict[str, str]:
        annotations = self.metadata.get("annotations")
        if not isinstance(annotations, dict):
            annotations = {}
            self.metadata["annotations"] = annotations
        return annotations

    @annotations.setter
    def annotations(self, value: Mapping[str, str]) -> None:
        self.metadata["annotations"] = dict(value)

    def set_annotation(self, key: str, value: str) -> None:
        self.annotations[key] = value

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.body)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind!r}, name={self.name!r})"


class WorkloadObject(ManifestObject):
    """Workload kinds that carry a replica count and a pod template."""

    @property
    def spec(self) -> Dict[str, Any]:
        spec = self.body.get("spec")
        if not isinstance(spec, dict):
            spec = {}
            self.body["spec"] = spec
        return spec

    @property
    def replicas(self) -> Optional[int]:
        value = self.spec.get("replicas")
        if value is None:
            return None
        if isinstance(value, bool):
            raise ManifestDecodeError(f"{self.kind} {self.name} has invalid replicas {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise ManifestDecodeError(f"{self.kind} {self.name} has invalid replicas {value!r}") from exc

    @replicas.setter
    def replicas(self, value: int) -> None:
        self.spec["replicas"] = int(value)

    @property
    def containers(self) -> List[Dict[str, Any]]:
        template = self.spec.get("template")
        pod_spec = template.get("spec") if isinstance(template, dict) else None
        containers = pod_spec.get("containers") if isinstance(pod_spec, dict) else None
        if not isinstance(containers, list):
            return []
        return [c for c in containers if isinstance(c, dict)]


class Deployment(WorkloadObject):
    kind_name = "Deployment"


class StatefulSet(WorkloadObject):
    kind_name = "StatefulSet"


class BatchJob(ManifestObject):
    kind_name = "Job"


class ServiceAccount(ManifestObject):
    kind_name = "ServiceAccount"


class Role(ManifestObject):
    kind_name = "Role"


class RoleBinding(ManifestObject):
    kind_name = "RoleBinding"


class Namespace(ManifestObject):
    kind_name = "Namespace"

    @property
    def namespace(self) -> Optional[str]:
        return None

    @namespace.setter
    def namespace(self, value: str) -> None:
        # cluster scoped
        return None


class OpaqueObject(ManifestObject):
    pass


KIND_REGISTRY: Dict[str, Type[ManifestObject]] = {
    cls.kind_name: cls
    for cls in (Deployment, StatefulSet, BatchJob, ServiceAccount, Role, RoleBinding, Namespace)
    if cls.kind_name
}


def decode_manifest(source: Union[str, bytes, Mapping[str, Any]]) -> ManifestObject:
    """Decode one resource definition from YAML/JSON text or a mapping."""

    if isinstance(source, Mapping):
        body: Any = copy.deepcopy(dict(source))
    else:
        text = source.decode("utf-8") if isinstance(source, bytes) else source
        try:
            documents = [doc for doc in yaml.safe_load_all(text) if doc is not None]
        except yaml.YAMLError as exc:
            raise ManifestDecodeError(f"invalid manifest YAML: {exc}") from exc
        if not documents:
            raise ManifestDecodeError("manifest is empty")
        if len(documents) > 1:
            raise ManifestDecodeError("manifest must hold exactly one resource definition")
        body = documents[0]

    if not isinstance(body, dict):
        raise ManifestDecodeError("manifest must be a mapping")
    kind = body.get("kind")
    if not isinstance(kind, str) or not kind:
        raise ManifestDecodeError("manifest missing kind")
    if not isinstance(body.get("apiVersion"), str) or not body["apiVersion"]:
        raise ManifestDecodeError(f"{kind} manifest missing apiVersion")
    return KIND_REGISTRY.get(kind, OpaqueObject)(body)


def encode_manifest(obj: ManifestObject) -> str:
    return yaml.safe_dump(obj.to_dict(), sort_keys=False)


__all__ = [
    "BatchJob",
    "Deployment",
    "KIND_REGISTRY",
    "ManifestObject",
    "Namespace",
    "OpaqueObject",
    "Role",
    "RoleBinding",
    "ServiceAccount",
    "StatefulSet",
    "WorkloadObject",
    "decode_manifest",
    "encode_manifest",
]
