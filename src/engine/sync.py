from __future__ import annotations

import logging
from typing import Any, List, Mapping

from src.common.models import Condition, ResourceStatus
from src.workclient.work import work_conditions, work_name, work_namespace, work_uid

logger = logging.getLogger(__name__)


def resource_status_from_work(work: Mapping[str, Any]) -> ResourceStatus:
    return ResourceStatus(
        id=work_uid(work),
        manifest_name=work_name(work),
        node_target=work_namespace(work),
        conditions=[Condition.model_validate(c) for c in work_conditions(work)],
    )


def collect_resource_statuses(client: Any) -> List[ResourceStatus]:
    """Status of every ManifestWork known to the hub, across all clusters."""

    statuses: List[ResourceStatus] = []
    for work in client.list_all():
        if not work_uid(work):
            logger.debug("Skipping ManifestWork %s without UID", work_name(work))
            continue
        statuses.append(resource_status_from_work(work))
    return statuses


__all__ = ["collect_resource_statuses", "resource_status_from_work"]
