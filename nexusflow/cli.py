"""Command line interface for running nexusflow workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError

from nexusflow import WorkflowExecutor, get_repository
from nexusflow.config import load_config
from nexusflow.contracts import FailureMode, RunStatus
from nexusflow.credentials import InMemorySecretStore, SecretResolver, get_secret_store
from nexusflow.errors import NexusflowError
from nexusflow.events import EventLevel, RunEvent
from nexusflow.graph import build_graph, load_definition

app = typer.Typer(help="CLI for nexusflow workflows")

runs_app = typer.Typer(help="Commands for inspecting persisted runs")
app.add_typer(runs_app, name="runs")

_LEVEL_COLORS = {
    EventLevel.INFO: None,
    EventLevel.SUCCESS: typer.colors.GREEN,
    EventLevel.ERROR: typer.colors.RED,
}


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", help="Python logging level"),
) -> None:
    """nexusflow CLI entry point."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


class _EchoObserver:
    """Print run events as they are emitted."""

    def on_event(self, event: RunEvent) -> None:
        where = f"[{event.step_id}] " if event.step_id else ""
        typer.secho(
            f"{event.timestamp:%H:%M:%S} {event.level.value:<7} {where}{event.message}",
            fg=_LEVEL_COLORS[event.level],
        )


def _parse_secrets(values: List[str]) -> dict[str, str]:
    secrets: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected ID=VALUE, got {item!r}", param_hint="--secret")
        secrets[key] = value
    return secrets


@app.command("run")
def run_workflow(
    path: Path,
    payload: Optional[str] = typer.Option(None, help="JSON object passed to the trigger"),
    continue_on_failure: bool = typer.Option(
        False, help="Keep running independent branches after a step fails"
    ),
    secret: List[str] = typer.Option(
        [], "--secret", help="Credential as ID=VALUE; may be repeated"
    ),
    timeout: Optional[float] = typer.Option(None, help="Give up waiting after this many seconds"),
) -> None:
    """
    Execute a workflow definition and print its events and results.

    Args:
        path: YAML or JSON workflow definition
        payload: Optional JSON object handed to the trigger step
        continue_on_failure: Hold back only the failed step's descendants
        secret: Credentials for this run; when given, the configured secret
            store is not consulted

    Example:
        nexusflow run ./workflow.yaml --payload '{"topic": "python"}'
        nexusflow run ./workflow.yaml --secret slack-token=xoxb-123
    """
    try:
        data = json.loads(payload) if payload else {}
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"Invalid JSON: {exc}", param_hint="--payload") from exc
    if not isinstance(data, dict):
        raise typer.BadParameter("Payload must be a JSON object", param_hint="--payload")

    try:
        definition = load_definition(path)
    except (OSError, ValidationError) as exc:
        typer.secho(f"Cannot load workflow: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    config = load_config()
    store = InMemorySecretStore(_parse_secrets(secret)) if secret else get_secret_store(config=config)
    executor = WorkflowExecutor(
        secret_store=store,
        config=config,
        observers=[_EchoObserver()],
        failure_mode=FailureMode.CONTINUE if continue_on_failure else None,
    )

    async def _run():
        try:
            return await executor.execute(definition, data, timeout=timeout)
        finally:
            await executor.aclose()

    try:
        report = asyncio.run(_run())
    except NexusflowError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)

    typer.echo(f"Run {report.run_id}: {report.status.value}")
    if report.error:
        typer.echo(f"Error: {report.error}")
    typer.echo(json.dumps(report.results, indent=2, default=str))
    if report.status is not RunStatus.COMPLETED:
        raise typer.Exit(code=1)


@app.command("validate")
def validate_workflow(path: Path) -> None:
    """
    Check a workflow definition without running it.

    Reports structural errors (cycles, dangling edges, trigger count),
    steps that can never run and credentials missing from the secret store.
    """
    try:
        graph = build_graph(load_definition(path))
    except (OSError, ValidationError, NexusflowError) as exc:
        typer.secho(f"Invalid workflow: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    name = graph.definition.name or path.stem
    typer.echo(f"Workflow {name}: {len(graph)} steps, {len(graph.definition.edges)} edges")
    orphans = graph.orphans()
    if orphans:
        typer.echo(f"Never reached: {', '.join(orphans)}")
    resolver = SecretResolver(get_secret_store(config=load_config()))
    missing = resolver.missing(graph.credential_ids())
    if missing:
        typer.secho(f"Missing credentials: {', '.join(missing)}", fg=typer.colors.YELLOW)


@runs_app.command("list")
def runs_list() -> None:
    """
    List persisted runs with their status.

    Only runs stored in a database are visible across processes; configure
    ``database_url`` or ``NEXUSFLOW_DATABASE_URL`` with a ``sqlite://`` path.
    """
    repo = get_repository()
    runs = asyncio.run(repo.list_runs())
    if not runs:
        typer.echo("No runs found")
        return
    for run in runs:
        typer.echo(f"{run.run_id}\t{run.status}")


@runs_app.command("show")
def runs_show(run_id: str) -> None:
    """Show status, payload and step history of a persisted run."""
    repo = get_repository()
    run = asyncio.run(repo.get_run(run_id))
    if run is None:
        typer.echo("Run not found")
        raise typer.Exit(code=1)
    typer.echo(f"Run {run.run_id}: {run.status}")
    if run.error:
        typer.echo(f"Error: {run.error}")
    if run.payload:
        typer.echo(f"Payload: {run.payload}")
    for step in run.steps:
        typer.echo(
            f"- {step.step_id}: {step.status}"
            + (
                f" ({step.started_at} -> {step.completed_at})"
                if step.started_at or step.completed_at
                else ""
            )
        )


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
