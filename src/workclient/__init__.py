"""Client for the hub's ManifestWork resource-distribution API."""

from .client import WorkClient
from .credentials import resolve_api_client

__all__ = ["WorkClient", "resolve_api_client"]
