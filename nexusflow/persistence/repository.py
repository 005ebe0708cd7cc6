"""Repository abstraction for run state persistence."""

from __future__ import annotations

from typing import Protocol

from .models import RunRecord


class RunRepository(Protocol):
    """Protocol for run state persistence backends."""

    async def create_run(
        self, run_id: str, definition: dict, payload: dict | None = None
    ) -> None:
        """Persist initial run state."""

    async def mark_step_started(self, run_id: str, step_id: str) -> None:
        """Record start of a step."""

    async def mark_step_completed(
        self,
        run_id: str,
        step_id: str,
        status: str,
        output: dict | None = None,
        error: str | None = None,
    ) -> None:
        """Record completion or failure of a step."""

    async def mark_run_completed(
        self, run_id: str, status: str = "completed", error: str | None = None
    ) -> None:
        """Mark the run as terminated."""

    async def get_run(self, run_id: str) -> RunRecord | None:
        """Retrieve the run by id."""

    async def list_runs(self) -> list[RunRecord]:
        """Return all persisted runs."""
