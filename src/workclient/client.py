from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from kubernetes import client as k8s_client
from kubernetes.client.rest import ApiException

from src.common.errors import WorkClientError, WorkNotFoundError

from .work import WORK_GROUP, WORK_PLURAL, WORK_VERSION, work_name

logger = logging.getLogger(__name__)

MERGE_PATCH_CONTENT_TYPE = "application/merge-patch+json"


class WorkClient:
    """ManifestWork operations against the hub cluster, scoped by cluster namespace.

    Built once at process start from a resolved ``ApiClient`` and shared
    read-only afterwards; the hub API's resource versions provide the
    concurrency control for updates.
    """

    def __init__(self, api_client: Optional[k8s_client.ApiClient] = None, *, custom_api: Any = None) -> None:
        self._api = custom_api if custom_api is not None else k8s_client.CustomObjectsApi(api_client)

    def create(self, namespace: str, work: Mapping[str, Any]) -> Dict[str, Any]:
        with _translate("create", namespace, work_name(work) or "<generated>"):
            return self._api.create_namespaced_custom_object(
                WORK_GROUP, WORK_VERSION, namespace, WORK_PLURAL, dict(work)
            )

    def get(self, namespace: str, name: str) -> Dict[str, Any]:
        with _translate("get", namespace, name):
            return self._api.get_namespaced_custom_object(
                WORK_GROUP, WORK_VERSION, namespace, WORK_PLURAL, name
            )

    def update(self, namespace: str, work: Mapping[str, Any]) -> Dict[str, Any]:
        name = work_name(work)
        with _translate("update", namespace, name):
            return self._api.replace_namespaced_custom_object(
                WORK_GROUP, WORK_VERSION, namespace, WORK_PLURAL, name, dict(work)
            )

    def patch(self, namespace: str, name: str, body: Mapping[str, Any]) -> Dict[str, Any]:
        with _translate("patch", namespace, name):
            return self._api.patch_namespaced_custom_object(
                WORK_GROUP,
                WORK_VERSION,
                namespace,
                WORK_PLURAL,
                name,
                dict(body),
                _content_type=MERGE_PATCH_CONTENT_TYPE,
            )

    def delete(self, namespace: str, name: str) -> Dict[str, Any]:
        with _translate("delete", namespace, name):
            return self._api.delete_namespaced_custom_object(
                WORK_GROUP, WORK_VERSION, namespace, WORK_PLURAL, name, grace_period_seconds=0
            )

    def list(self, namespace: str) -> List[Dict[str, Any]]:
        with _translate("list", namespace, "*"):
            result = self._api.list_namespaced_custom_object(WORK_GROUP, WORK_VERSION, namespace, WORK_PLURAL)
        return list(result.get("items") or [])

    def list_all(self) -> List[Dict[str, Any]]:
        with _translate("list", "*", "*"):
            result = self._api.list_cluster_custom_object(WORK_GROUP, WORK_VERSION, WORK_PLURAL)
        return list(result.get("items") or [])


class _translate:
    """Re-raise ``ApiException`` as the work client error types."""

    def __init__(self, verb: str, namespace: str, name: str) -> None:
        self.verb = verb
        self.namespace = namespace
        self.name = name

    def __enter__(self) -> "_translate":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is None or not isinstance(exc, ApiException):
            return False
        message = f"{self.verb} ManifestWork {self.namespace}/{self.name} failed: {exc.status} {exc.reason}"
        logger.debug(message)
        if exc.status == 404:
            raise WorkNotFoundError(message, status=exc.status, reason=exc.reason) from exc
        raise WorkClientError(message, status=exc.status, reason=exc.reason) from exc


__all__ = ["MERGE_PATCH_CONTENT_TYPE", "WorkClient"]
