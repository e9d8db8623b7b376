from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from src.common.errors import CredentialError, WorkClientError
from src.common.models import Job
from src.common.settings import DEFAULT_CONFIG_PATH, Settings, load_settings
from src.engine.dispatcher import JobDispatcher
from src.engine.status import map_state
from src.workclient.client import WorkClient
from src.workclient.credentials import resolve_api_client
from src.workclient.work import work_conditions

app = typer.Typer(help="Execute deployment jobs as ManifestWorks on managed clusters.")

LOG_FORMAT = "[DEPLOY-MANAGER] %(asctime)s %(levelname)s: %(message)s"


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def _load(config: Optional[Path]) -> Settings:
    try:
        return load_settings(config)
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(f"Invalid configuration: {exc}") from exc


def _work_client(settings: Settings) -> WorkClient:
    try:
        api_client = resolve_api_client(settings.kubeconfig_path)
    except CredentialError as exc:
        typer.echo(f"Credential resolution failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    return WorkClient(api_client)


def _service_context(settings: Settings, work_client: WorkClient):
    from .app import ServiceContext

    try:
        return ServiceContext.build(settings, work_client)
    except ValueError as exc:
        typer.echo(f"Invalid job manager configuration: {exc}", err=True)
        raise typer.Exit(code=1) from exc


@app.command()
def serve(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Configuration file (defaults to {DEFAULT_CONFIG_PATH}).",
    ),
    host: Optional[str] = typer.Option(None, "--host", help="Bind address."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port."),
) -> None:
    """Resolve credentials, then serve the HTTP API."""

    import uvicorn

    from .app import create_app

    settings = _load(config)
    _configure_logging(settings.log_level)
    # credential failures stop the process here, before any request is served
    work_client = _work_client(settings)
    context = _service_context(settings, work_client)
    uvicorn.run(
        create_app(context),
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


@app.command()
def execute(
    jobs: Path = typer.Option(
        Path("data/jobs.json"),
        "--jobs",
        "-j",
        help="JSON array of jobs to execute.",
    ),
    out: Path = typer.Option(
        Path("data/executed.json"),
        "--out",
        "-o",
        help="Where to write the updated jobs.",
    ),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file."),
    wait: bool = typer.Option(
        True,
        "--wait/--no-wait",
        help="Wait for background completion monitors before exiting.",
    ),
) -> None:
    """Execute jobs from a file without the job manager."""

    settings = _load(config)
    _configure_logging(settings.log_level)
    records = _load_array(jobs)
    parsed: List[Job] = []
    for record in records:
        try:
            parsed.append(Job.model_validate(record))
        except ValueError as exc:
            raise typer.BadParameter(f"Invalid job record in {jobs}: {exc}") from exc

    dispatcher = JobDispatcher(_work_client(settings), settings)
    results = dispatcher.execute_batch(parsed)
    if wait:
        dispatcher.monitors.join_all(settings.monitor_timeout_seconds + settings.monitor_interval_seconds)

    rendered: List[Dict[str, Any]] = []
    for result in results:
        record = result.job.to_wire()
        if result.error is not None:
            record["error"] = str(result.error)
        rendered.append(record)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(rendered, indent=2), encoding="utf-8")
    failed = sum(1 for result in results if not result.ok)
    typer.echo(f"Executed {len(results)} job(s), {failed} failed. Results written to {out.resolve()}")


@app.command()
def status(
    cluster: str = typer.Option(..., "--cluster", help="Managed cluster namespace."),
    name: str = typer.Option(..., "--name", help="ManifestWork name."),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file."),
) -> None:
    """Print the conditions and derived job state of one ManifestWork."""

    settings = _load(config)
    _configure_logging(settings.log_level)
    client = _work_client(settings)
    try:
        work = client.get(cluster, name)
    except WorkClientError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    conditions = work_conditions(work)
    for condition in conditions:
        typer.echo(f"{condition.get('type')}\t{condition.get('status')}\t{condition.get('reason', '')}")
    typer.echo(f"state: {map_state(conditions).value}")


def _load_array(path: Path) -> List[Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError as exc:
        raise typer.BadParameter(f"Jobs file not found: {path}") from exc
    if not isinstance(data, list):
        raise typer.BadParameter("Jobs file must contain a JSON array")
    return data


if __name__ == "__main__":  # pragma: no cover
    app()
