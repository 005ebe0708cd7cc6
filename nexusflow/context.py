"""Per-run mutable state owned by the executor."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from .contracts import FailureMode, RunReport, RunStatus, StepReport, StepStatus
from .events import EventLog, RunObserver
from .graph import WorkflowGraph


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RunContext:
    """Result table, processed set, step states and event log of one run.

    Every mutation happens on the event loop thread under ``lock``; reads
    for input merging only touch parents that already reached a terminal
    state, whose results never change.
    """

    def __init__(
        self,
        run_id: str,
        graph: WorkflowGraph,
        payload: Optional[Mapping[str, Any]] = None,
        failure_mode: FailureMode = FailureMode.FAIL_FAST,
        observers: Iterable[RunObserver] = (),
    ) -> None:
        self.run_id = run_id
        self.graph = graph
        self.payload: Dict[str, Any] = dict(payload or {})
        self.failure_mode = failure_mode
        self.status = RunStatus.PENDING
        self.error: Optional[str] = None
        self.error_code: Optional[str] = None

        self.result_table: Dict[str, Any] = {}
        self.processed: Set[str] = set()
        self.blocked: Set[str] = set()
        self.steps: Dict[str, StepReport] = {
            step.id: StepReport(step_id=step.id, kind=step.kind) for step in graph.steps
        }
        self.events = EventLog(run_id, observers)

        self.lock = asyncio.Lock()
        self.in_flight: Dict[str, asyncio.Task] = {}
        self.finished = asyncio.Event()

    # ------------------------------------------------------------------
    @property
    def terminated(self) -> bool:
        return self.status in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)

    @property
    def accepting_dispatches(self) -> bool:
        return self.status is RunStatus.RUNNING

    def is_ready(self, step_id: str) -> bool:
        """At least one parent, all parents processed, none failed upstream."""
        if step_id in self.processed or step_id in self.blocked:
            return False
        if self.steps[step_id].status is not StepStatus.IDLE:
            return False
        parents = self.graph.parents(step_id)
        return bool(parents) and all(parent in self.processed for parent in parents)

    def parent_results(self, step_id: str) -> List[Any]:
        return [self.result_table.get(parent) for parent in self.graph.parents(step_id)]

    # ------------------------------------------------------------------
    def mark_running(self, step_id: str) -> None:
        report = self.steps[step_id]
        if report.status is not StepStatus.IDLE:
            raise RuntimeError(f"Step {step_id} already left idle ({report.status.value})")
        report.status = StepStatus.RUNNING
        report.started_at = _now()

    def mark_completed(
        self, step_id: str, result: Any, attempts: int, commit: bool = True
    ) -> None:
        report = self.steps[step_id]
        report.status = StepStatus.COMPLETED
        report.result = result
        report.attempts = attempts
        report.finished_at = _now()
        if commit:
            if step_id in self.result_table:
                raise RuntimeError(f"Result for step {step_id} already recorded")
            self.result_table[step_id] = result
            self.processed.add(step_id)

    def mark_failed(
        self,
        step_id: str,
        error: str,
        error_code: str,
        attempts: int,
        commit: bool = True,
    ) -> None:
        report = self.steps[step_id]
        report.status = StepStatus.FAILED
        report.error = error
        report.error_code = error_code
        report.attempts = attempts
        report.finished_at = _now()
        if commit:
            self.processed.add(step_id)

    def finish(
        self,
        status: RunStatus,
        error: Optional[str] = None,
        error_code: Optional[str] = None,
    ) -> None:
        if self.terminated:
            return
        self.status = status
        self.error = error
        self.error_code = error_code
        self.finished.set()

    # ------------------------------------------------------------------
    def idle_steps(self) -> List[str]:
        return [sid for sid, report in self.steps.items() if report.status is StepStatus.IDLE]

    def failed_steps(self) -> List[str]:
        return [sid for sid, report in self.steps.items() if report.status is StepStatus.FAILED]

    def report(self) -> RunReport:
        return RunReport(
            run_id=self.run_id,
            status=self.status,
            steps={sid: report.model_copy() for sid, report in self.steps.items()},
            results=dict(self.result_table),
            error=self.error,
            error_code=self.error_code,
            idle_steps=self.idle_steps(),
        )
