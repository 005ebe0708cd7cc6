"""In-memory implementation of the run repository."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict

from .models import RunRecord, StepRecord
from .repository import RunRepository


class InMemoryRunRepository(RunRepository):
    """Store run state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._runs: Dict[str, RunRecord] = {}
        self._step_id = 0

    # ------------------------------------------------------------------
    async def create_run(
        self, run_id: str, definition: dict, payload: dict | None = None
    ) -> None:
        self._runs[run_id] = RunRecord(
            run_id=run_id,
            definition=definition,
            payload=payload or {},
            status="running",
            steps=[],
        )

    async def mark_step_started(self, run_id: str, step_id: str) -> None:
        run = self._runs.get(run_id)
        if not run:
            return
        # a step starts at most once per run
        for step in run.steps:
            if step.step_id == step_id:
                return
        self._step_id += 1
        run.steps.append(
            StepRecord(
                id=self._step_id,
                run_id=run_id,
                step_id=step_id,
                started_at=datetime.now(timezone.utc),
            )
        )

    async def mark_step_completed(
        self,
        run_id: str,
        step_id: str,
        status: str,
        output: dict | None = None,
        error: str | None = None,
    ) -> None:
        run = self._runs.get(run_id)
        if not run:
            return
        for step in run.steps:
            if step.step_id == step_id and step.completed_at is None:
                step.completed_at = datetime.now(timezone.utc)
                step.status = status
                step.output = output or {}
                step.error = error
                break

    async def mark_run_completed(
        self, run_id: str, status: str = "completed", error: str | None = None
    ) -> None:
        run = self._runs.get(run_id)
        if run:
            run.status = status
            run.error = error

    async def get_run(self, run_id: str) -> RunRecord | None:
        return self._runs.get(run_id)

    async def list_runs(self) -> list[RunRecord]:
        return list(self._runs.values())
