from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status

from src.common.errors import JobSourceError, WorkClientError, WorkNotFoundError
from src.common.settings import Settings
from src.engine.dispatcher import JobDispatcher
from src.engine.locks import ResourceLocks
from src.engine.monitor import MonitorRegistry
from src.engine.sync import collect_resource_statuses, resource_status_from_work
from src.jobsource.client import JobManagerClient

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT_SECONDS = 10.0


@dataclass
class ServiceContext:
    """Everything the handlers share; built once before the app serves traffic."""

    settings: Settings
    work_client: Any
    job_source: Any
    monitors: MonitorRegistry = field(default_factory=MonitorRegistry)
    locks: ResourceLocks = field(default_factory=ResourceLocks)
    dispatcher: Optional[JobDispatcher] = None

    def __post_init__(self) -> None:
        if self.dispatcher is None:
            self.dispatcher = JobDispatcher(
                self.work_client,
                self.settings,
                monitors=self.monitors,
                locks=self.locks,
            )

    @classmethod
    def build(cls, settings: Settings, work_client: Any) -> "ServiceContext":
        job_source = JobManagerClient(settings.jobmanager_url, timeout_seconds=settings.http_timeout_seconds)
        return cls(settings=settings, work_client=work_client, job_source=job_source)


def get_context(request: Request) -> ServiceContext:
    return request.app.state.context


def create_app(context: ServiceContext) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        pending = context.monitors.active()
        if pending:
            logger.info("Cancelling %d completion monitor(s)", len(pending))
        # joining monitor threads blocks, keep it off the event loop
        stopped = await asyncio.to_thread(context.monitors.shutdown, SHUTDOWN_TIMEOUT_SECONDS)
        if not stopped:
            logger.warning("Some completion monitors did not stop before shutdown")

    app = FastAPI(
        title="Deploy Manager",
        description="Executes deployment jobs as ManifestWorks on managed clusters.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.context = context

    @app.get("/deploy-manager")
    def home() -> str:
        return "Welcome To Deploy Manager"

    @app.get("/deploy-manager/healthz")
    def healthz() -> str:
        return "Deploy manager working properly!"

    @app.get("/deploy-manager/execute")
    def execute_jobs(
        authorization: Optional[str] = Header(default=None),
        ctx: ServiceContext = Depends(get_context),
    ) -> List[Dict[str, Any]]:
        if not authorization:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authorization header required")
        try:
            jobs = ctx.job_source.fetch_executable_jobs(authorization)
        except JobSourceError as exc:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

        results = ctx.dispatcher.execute_batch(jobs)
        for result in results:
            try:
                ctx.job_source.update_job(result.job, authorization)
            except JobSourceError as exc:
                logger.error("Could not report job %s to the job manager: %s", result.job.id, exc)
        return [result.job.to_wire() for result in results]

    @app.get("/deploy-manager/resource")
    def get_resource_status(
        uid: str = Query(default=""),
        node_target: str = Query(default=""),
        manifest_name: str = Query(default=""),
        ctx: ServiceContext = Depends(get_context),
    ) -> Dict[str, Any]:
        if not uid or not node_target or not manifest_name:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="uid, node_target and manifest_name are required",
            )
        try:
            parsed_uid = uuid.UUID(uid)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Can not parse UID") from exc

        try:
            work = ctx.work_client.get(node_target, manifest_name)
        except WorkNotFoundError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Can not find Resource") from exc
        except WorkClientError as exc:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

        resource = resource_status_from_work(work)
        if resource.id != str(parsed_uid):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="provided UID is different from the retrieved manifest",
            )
        return resource.to_wire()

    @app.get("/deploy-manager/resource/sync")
    def sync_resources(
        authorization: Optional[str] = Header(default=None),
        ctx: ServiceContext = Depends(get_context),
    ) -> List[Dict[str, Any]]:
        try:
            resources = collect_resource_statuses(ctx.work_client)
        except WorkClientError as exc:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
        for resource in resources:
            try:
                ctx.job_source.push_resource_status(resource, authorization or "")
            except JobSourceError as exc:
                logger.error("Resource status update failed for %s: %s", resource.id, exc)
        return [resource.to_wire() for resource in resources]

    return app


__all__ = ["ServiceContext", "create_app", "get_context"]
