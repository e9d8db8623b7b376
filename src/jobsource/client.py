from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from src.common.errors import JobSourceError
from src.common.models import Job, ResourceStatus

logger = logging.getLogger(__name__)


class JobManagerClient:
    """HTTP client for the upstream job manager.

    Every call forwards the caller's ``Authorization`` header unchanged.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        if not base_url:
            raise ValueError("Job manager URL is required")
        if not base_url.startswith("http"):
            raise ValueError("Job manager URL must start with http or https")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout_seconds
        self._transport = transport

    def fetch_executable_jobs(self, authorization: str) -> List[Job]:
        response = self._request("GET", "/jobs/executable", authorization)
        try:
            data = response.json()
        except ValueError as exc:
            raise JobSourceError(f"job manager returned invalid JSON: {exc}", status=response.status_code) from exc
        if data is None:
            return []
        if not isinstance(data, list):
            raise JobSourceError("job manager must return a JSON array of jobs", status=response.status_code)
        jobs: List[Job] = []
        for record in data:
            try:
                jobs.append(Job.model_validate(record))
            except ValueError as exc:
                logger.warning("Skipping malformed job record: %s", exc)
        logger.info("Fetched %d executable job(s)", len(jobs))
        return jobs

    def update_job(self, job: Job, authorization: str) -> None:
        self._request("PUT", f"/jobs/{job.id}", authorization, payload=job.to_wire())

    def push_resource_status(self, status: ResourceStatus, authorization: str) -> None:
        self._request(
            "PUT",
            f"/jobmanager/resources/status/{status.id}",
            authorization,
            payload=status.to_wire(),
            params={"uuid": status.id},
        )

    def _request(
        self,
        method: str,
        path: str,
        authorization: str,
        *,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        if authorization:
            headers["Authorization"] = authorization
        try:
            with httpx.Client(timeout=self.timeout, headers=headers, transport=self._transport) as client:
                response = client.request(method, f"{self.base_url}{path}", json=payload, params=params)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise JobSourceError(
                f"job manager {method} {path} returned {exc.response.status_code}",
                status=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise JobSourceError(f"job manager {method} {path} failed: {exc}") from exc
        return response


__all__ = ["JobManagerClient"]
