from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.config.config_exception import ConfigException

from src.common.errors import CredentialError
from src.common.settings import DEFAULT_KUBECONFIG

logger = logging.getLogger(__name__)


def resolve_api_client(kubeconfig: Optional[Path] = None) -> k8s_client.ApiClient:
    """In-cluster service identity first, then the kubeconfig file.

    Called once at startup; a :class:`CredentialError` here must stop the
    process before it serves any job.
    """

    configuration = k8s_client.Configuration()
    try:
        k8s_config.load_incluster_config(client_configuration=configuration)
        logger.info("Using in-cluster service account credentials")
        return k8s_client.ApiClient(configuration)
    except ConfigException as exc:
        logger.info("In-cluster credentials unavailable (%s); trying kubeconfig", exc)

    path = Path(kubeconfig) if kubeconfig else DEFAULT_KUBECONFIG
    if not path.exists():
        raise CredentialError(f"kubeconfig not found: {path}")
    try:
        k8s_config.load_kube_config(config_file=str(path), client_configuration=configuration)
    except (ConfigException, OSError, TypeError, ValueError) as exc:
        raise CredentialError(f"failed to load kubeconfig {path}: {exc}") from exc
    logger.info("Using kubeconfig %s", path)
    return k8s_client.ApiClient(configuration)


__all__ = ["resolve_api_client"]
