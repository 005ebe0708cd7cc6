import asyncio
import uuid

import pytest
from typer.testing import CliRunner

import nexusflow.persistence as persistence
from nexusflow.cli import app
from nexusflow.persistence import InMemoryRunRepository

WORKFLOW = """
name: cli-demo
steps:
  - id: start
    kind: trigger
  - id: echo
    kind: external_action
    label: Echo
    config:
      serviceId: demo
      actionId: echo
      parameters:
        y: 2
edges:
  - source: start
    target: echo
"""


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    monkeypatch.setenv("NEXUSFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.delenv("NEXUSFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("NEXUSFLOW_SECRETS_BACKEND", raising=False)


def _setup_repo() -> InMemoryRunRepository:
    repo = InMemoryRunRepository()
    persistence._repository_instance = repo
    return repo


def test_run_command_prints_events_and_results(tmp_path):
    _setup_repo()
    path = tmp_path / "flow.yaml"
    path.write_text(WORKFLOW)

    result = CliRunner().invoke(app, ["run", str(path), "--payload", '{"x": 1}'])

    assert result.exit_code == 0, result.output
    assert "Trigger Activated" in result.output
    assert "Completed: Echo" in result.output
    assert ": completed" in result.output
    assert '"upstream_data"' in result.output


def test_run_command_fails_on_missing_credential(tmp_path):
    _setup_repo()
    path = tmp_path / "flow.yaml"
    path.write_text(WORKFLOW.replace("actionId: echo", "actionId: echo\n      credentialId: absent-token"))

    result = CliRunner().invoke(app, ["run", str(path)])

    assert result.exit_code == 1
    assert "MISSING SECRET: absent-token" in result.output


def test_run_command_accepts_inline_secrets(tmp_path):
    _setup_repo()
    path = tmp_path / "flow.yaml"
    path.write_text(WORKFLOW.replace("actionId: echo", "actionId: echo\n      credentialId: token"))

    result = CliRunner().invoke(app, ["run", str(path), "--secret", "token=abc"])

    assert result.exit_code == 0, result.output


def test_run_command_rejects_non_object_payload(tmp_path):
    path = tmp_path / "flow.yaml"
    path.write_text(WORKFLOW)
    result = CliRunner().invoke(app, ["run", str(path), "--payload", "[1, 2]"])
    assert result.exit_code != 0


def test_validate_command_reports_structure(tmp_path):
    path = tmp_path / "flow.yaml"
    path.write_text(WORKFLOW + "  - source: echo\n    target: start\n")

    result = CliRunner().invoke(app, ["validate", str(path)])
    assert result.exit_code == 1
    assert "cycle" in result.output

    path.write_text(WORKFLOW)
    result = CliRunner().invoke(app, ["validate", str(path)])
    assert result.exit_code == 0
    assert "Workflow cli-demo: 2 steps, 1 edges" in result.output


def test_runs_commands_list_and_show():
    repo = _setup_repo()
    run_id = str(uuid.uuid4())
    asyncio.run(repo.create_run(run_id, {}, {"x": 1}))
    asyncio.run(repo.mark_step_started(run_id, "start"))
    asyncio.run(repo.mark_step_completed(run_id, "start", status="completed"))
    asyncio.run(repo.mark_run_completed(run_id))

    runner = CliRunner()
    listed = runner.invoke(app, ["runs", "list"])
    assert listed.exit_code == 0
    assert f"{run_id}\tcompleted" in listed.output

    shown = runner.invoke(app, ["runs", "show", run_id])
    assert shown.exit_code == 0
    assert "- start: completed" in shown.output

    missing = runner.invoke(app, ["runs", "show", "missing-id"])
    assert missing.exit_code == 1
    assert "Run not found" in missing.output
