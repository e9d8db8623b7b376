from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from src.common.errors import ManifestDecodeError
from src.common.models import RemediationType
from src.manifests.objects import ManifestObject, WorkloadObject

from . import quantity

logger = logging.getLogger(__name__)

REPLICA_STEP = 1
DEFAULT_REPLICAS = 1
CPU_STEP = Decimal(1)  # 1000 millicores
MEMORY_STEP = Decimal(1000 * 1024 * 1024)  # 1000Mi

HORIZONTAL = {RemediationType.SCALE_UP.value, RemediationType.SCALE_DOWN.value}
VERTICAL = {RemediationType.SCALE_OUT.value, RemediationType.SCALE_IN.value}


def horizontal_scale(obj: ManifestObject, sub_type: str, *, clamp: bool = True) -> Optional[ManifestObject]:
    """Add or remove one replica on a Deployment or StatefulSet.

    Returns ``None`` for kinds without replicas so callers keep the manifest
    unchanged. With ``clamp`` the count never drops below zero.
    """

    if not isinstance(obj, WorkloadObject):
        return None
    current = obj.replicas if obj.replicas is not None else DEFAULT_REPLICAS
    if sub_type == RemediationType.SCALE_UP:
        target = current + REPLICA_STEP
    elif sub_type == RemediationType.SCALE_DOWN:
        target = current - REPLICA_STEP
    else:
        raise ValueError(f"unsupported horizontal scaling type: {sub_type}")
    if clamp and target < 0:
        logger.warning("%s %s already at %d replicas; not scaling below zero", obj.kind, obj.name, current)
        target = 0
    obj.replicas = target
    logger.info("%s %s replicas %d -> %d", obj.kind, obj.name, current, target)
    return obj


def vertical_scale(obj: ManifestObject, sub_type: str) -> Optional[ManifestObject]:
    """Shift the first container's CPU and memory requests by one step."""

    if not isinstance(obj, WorkloadObject):
        return None
    if sub_type == RemediationType.SCALE_OUT:
        sign = 1
    elif sub_type == RemediationType.SCALE_IN:
        sign = -1
    else:
        raise ValueError(f"unsupported vertical scaling type: {sub_type}")

    containers = obj.containers
    if not containers:
        logger.warning("%s %s has no containers to resize", obj.kind, obj.name)
        return None
    requests = _requests(containers[0])
    logger.info("Current CPU: %s, Memory: %s", requests.get("cpu"), requests.get("memory"))
    # parse both before writing so a bad value leaves the manifest untouched
    cpu = quantity.parse(requests.get("cpu"))
    memory = quantity.parse(requests.get("memory"))
    _adjust(requests, "cpu", cpu, sign * CPU_STEP, quantity.format_cpu)
    _adjust(requests, "memory", memory, sign * MEMORY_STEP, quantity.format_memory)
    return obj


def scale(obj: ManifestObject, sub_type: str, *, clamp: bool = True) -> Optional[ManifestObject]:
    """Apply one scaling step; manifests with unreadable values are skipped."""

    if sub_type not in HORIZONTAL and sub_type not in VERTICAL:
        raise ValueError(f"unsupported scaling type: {sub_type}")
    try:
        if sub_type in HORIZONTAL:
            return horizontal_scale(obj, sub_type, clamp=clamp)
        return vertical_scale(obj, sub_type)
    except ManifestDecodeError as exc:
        logger.warning("Skipping %s of %s %s: %s", sub_type, obj.kind, obj.name, exc)
        return None


def _requests(container: Dict[str, Any]) -> Dict[str, Any]:
    resources = container.get("resources")
    if not isinstance(resources, dict):
        resources = {}
        container["resources"] = resources
    requests = resources.get("requests")
    if not isinstance(requests, dict):
        requests = {}
        resources["requests"] = requests
    return requests


def _adjust(requests: Dict[str, Any], resource: str, current: Decimal, delta: Decimal, formatter) -> None:
    updated = current + delta
    if updated < 0:
        logger.info("Skipping %s adjustment: %s would become negative", resource, requests.get(resource))
        return
    requests[resource] = formatter(updated)


__all__ = ["HORIZONTAL", "VERTICAL", "horizontal_scale", "scale", "vertical_scale"]
