import uuid

import pytest

import nexusflow.persistence as persistence
from nexusflow.config import NexusflowConfig
from nexusflow.persistence import (
    InMemoryRunRepository,
    SQLiteRunRepository,
    get_repository,
)


@pytest.mark.asyncio
@pytest.mark.parametrize("backend", ["inmemory", "sqlite"])
async def test_repository_crud(tmp_path, backend):
    if backend == "sqlite":
        repo = SQLiteRunRepository(tmp_path / "runs.db")
    else:
        repo = InMemoryRunRepository()

    run_id = str(uuid.uuid4())
    definition = {"steps": [{"id": "trigger", "kind": "trigger"}], "edges": []}

    await repo.create_run(run_id, definition, {"x": 1})
    await repo.mark_step_started(run_id, "trigger")
    await repo.mark_step_completed(run_id, "trigger", status="completed", output={"result": {"x": 1}})
    await repo.mark_run_completed(run_id, "failed", "Step send failed: boom")

    run = await repo.get_run(run_id)
    assert run is not None
    assert run.run_id == run_id
    assert run.definition == definition
    assert run.payload == {"x": 1}
    assert run.status == "failed"
    assert run.error == "Step send failed: boom"
    assert len(run.steps) == 1
    step = run.steps[0]
    assert step.step_id == "trigger"
    assert step.status == "completed"
    assert step.output == {"result": {"x": 1}}
    assert step.started_at is not None and step.completed_at is not None

    assert any(r.run_id == run_id for r in await repo.list_runs())
    assert await repo.get_run("missing") is None


@pytest.mark.asyncio
async def test_inmemory_repository_ignores_duplicate_starts():
    repo = InMemoryRunRepository()
    await repo.create_run("r1", {}, {})
    await repo.mark_step_started("r1", "a")
    await repo.mark_step_started("r1", "a")
    await repo.mark_step_completed("r1", "a", status="failed", error="boom")

    run = await repo.get_run("r1")
    assert len(run.steps) == 1
    assert run.steps[0].error == "boom"


def test_get_repository_selects_backend(tmp_path, monkeypatch):
    monkeypatch.delenv("NEXUSFLOW_DATABASE_URL", raising=False)
    monkeypatch.setattr(persistence, "_repository_instance", None)

    memory = get_repository(config=NexusflowConfig())
    assert isinstance(memory, InMemoryRunRepository)
    assert get_repository() is memory

    sqlite_repo = get_repository(f"sqlite://{tmp_path / 'runs.db'}")
    assert isinstance(sqlite_repo, SQLiteRunRepository)

    with pytest.raises(ValueError):
        get_repository("mysql://localhost/runs")
