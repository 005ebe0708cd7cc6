"""Run engine for nexusflow workflow graphs."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional

from .activities import ActivityCapability, get_activities
from .config import NexusflowConfig, load_config
from .context import RunContext
from .contracts import (
    FailureMode,
    RunReport,
    RunStatus,
    Step,
    StepStatus,
    WorkflowDefinition,
)
from .credentials import SecretResolver, SecretStore, get_secret_store
from .dispatch import ActivityDispatcher, StepOutcome, merge_upstream
from .errors import RunCancelled, describe_error
from .events import RunEvent, RunObserver
from .graph import WorkflowGraph, build_graph
from .persistence import RunRepository, get_repository

logger = logging.getLogger(__name__)


class WorkflowExecutor:
    """Execute workflow graphs as runs with per-step status and results.

    Readiness is event driven: the trigger is dispatched first, and every
    step completion evaluates only that step's children. A child is ready
    once it has at least one parent and all of its parents are processed.
    Ready steps run concurrently as asyncio tasks.

    Under ``FailureMode.FAIL_FAST`` the first failed step ends the run and
    no new step is started; invocations already in flight finish in the
    background, but their results are not committed to the run's result
    table. Under ``FailureMode.CONTINUE`` only the failed step's
    descendants are held back.
    """

    def __init__(
        self,
        activities: Optional[ActivityCapability] = None,
        secret_store: Optional[SecretStore] = None,
        *,
        config: Optional[NexusflowConfig] = None,
        repository: Optional[RunRepository] = None,
        observers: Iterable[RunObserver] = (),
        failure_mode: FailureMode | str | None = None,
    ) -> None:
        self.config = config or load_config()
        self._activities = activities or get_activities(self.config)
        self.resolver = SecretResolver(secret_store or get_secret_store(config=self.config))
        self._dispatcher = ActivityDispatcher(
            self._activities,
            self.resolver,
            retry_policy=self.config.retry,
            agent_settings=self.config.agent,
            default_wait=self.config.runner.default_wait,
        )
        self._repository = repository or get_repository(config=self.config)
        self._observers: List[RunObserver] = list(observers)
        self.failure_mode = FailureMode(failure_mode or self.config.runner.failure_mode)
        self._runs: Dict[str, RunContext] = {}
        self._drivers: Dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Run submission
    async def start_run(
        self,
        definition: WorkflowDefinition | WorkflowGraph | dict,
        payload: Optional[Mapping[str, Any]] = None,
        *,
        failure_mode: FailureMode | str | None = None,
    ) -> str:
        """Validate ``definition`` and start a run in the background.

        Returns:
            Run identifier for ``get_status``/``wait``/``cancel``.

        Raises:
            InvalidGraph: If the graph has a cycle, dangling edge or duplicate id.
            MissingTrigger: If the graph does not have exactly one trigger.
        """
        graph = definition if isinstance(definition, WorkflowGraph) else build_graph(definition)
        run_id = str(uuid.uuid4())
        ctx = RunContext(
            run_id,
            graph,
            payload,
            failure_mode=FailureMode(failure_mode or self.failure_mode),
            observers=self._observers,
        )
        self._runs[run_id] = ctx
        await self._repository.create_run(
            run_id, graph.definition.model_dump(mode="json"), ctx.payload
        )
        ctx.status = RunStatus.RUNNING
        self._drivers[run_id] = asyncio.create_task(
            self._drive(ctx), name=f"nexusflow-run-{run_id}"
        )
        logger.info(f"Started run {run_id} with {len(graph)} steps")
        return run_id

    async def execute(
        self,
        definition: WorkflowDefinition | WorkflowGraph | dict,
        payload: Optional[Mapping[str, Any]] = None,
        *,
        failure_mode: FailureMode | str | None = None,
        timeout: Optional[float] = None,
    ) -> RunReport:
        """Start a run and wait for it to terminate."""
        run_id = await self.start_run(definition, payload, failure_mode=failure_mode)
        return await self.wait(run_id, timeout=timeout)

    def get_status(self, run_id: str) -> RunReport:
        return self._get(run_id).report()

    async def wait(self, run_id: str, timeout: Optional[float] = None) -> RunReport:
        """Wait until the run terminates and return its final report."""
        ctx = self._get(run_id)
        await asyncio.wait_for(asyncio.shield(self._drivers[run_id]), timeout=timeout)
        return ctx.report()

    async def cancel(self, run_id: str, reason: str = "Run cancelled") -> bool:
        """Stop dispatching new steps for ``run_id``.

        Returns ``False`` if the run had already terminated.
        """
        ctx = self._get(run_id)
        async with ctx.lock:
            if ctx.terminated:
                return False
            ctx.events.error(reason)
            ctx.finish(RunStatus.CANCELLED, reason, RunCancelled.code)
        logger.info(f"Cancelled run {run_id}")
        return True

    def subscribe(self, run_id: str) -> AsyncIterator[RunEvent]:
        """Stream the run's events, replaying those already emitted."""
        return self._get(run_id).events.subscribe()

    def events(self, run_id: str) -> List[RunEvent]:
        return list(self._get(run_id).events)

    def list_runs(self) -> List[str]:
        return list(self._runs)

    def missing_credentials(
        self, definition: WorkflowDefinition | WorkflowGraph | dict
    ) -> List[str]:
        """Credential ids referenced by the graph that the secret store lacks."""
        graph = definition if isinstance(definition, WorkflowGraph) else build_graph(definition)
        return self.resolver.missing(graph.credential_ids())

    async def aclose(self) -> None:
        """Wait for every driver and in-flight invocation, including late ones."""
        while True:
            pending = [t for t in self._drivers.values() if not t.done()]
            for ctx in self._runs.values():
                pending.extend(t for t in ctx.in_flight.values() if not t.done())
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def _get(self, run_id: str) -> RunContext:
        try:
            return self._runs[run_id]
        except KeyError:
            raise KeyError(f"Unknown run: {run_id}") from None

    # ------------------------------------------------------------------
    # Scheduling
    async def _drive(self, ctx: RunContext) -> None:
        graph = ctx.graph
        try:
            async with ctx.lock:
                if ctx.terminated:
                    logger.info(f"Run {ctx.run_id} {ctx.status.value} before its first dispatch")
                    return
                ctx.events.info("Starting Workflow Execution...")
                orphans = graph.orphans()
                if orphans:
                    logger.warning(
                        f"Run {ctx.run_id}: steps without incoming edges never run: {orphans}"
                    )
                    ctx.events.info(
                        f"Steps without incoming edges will never run: {', '.join(orphans)}"
                    )
                trigger = graph.trigger
                ctx.mark_running(trigger.id)
            await self._run_step(ctx, trigger)
            await ctx.finished.wait()
        except asyncio.CancelledError:
            ctx.finish(RunStatus.CANCELLED, "Run driver cancelled", RunCancelled.code)
            raise
        finally:
            await self._finalize(ctx)

    def _dispatch(self, ctx: RunContext, step: Step) -> None:
        ctx.mark_running(step.id)
        ctx.events.info(f"Running {step.display_name}...", step.id)
        ctx.in_flight[step.id] = asyncio.create_task(
            self._run_step(ctx, step), name=f"nexusflow-step-{step.id}"
        )

    async def _run_step(self, ctx: RunContext, step: Step) -> None:
        try:
            upstream = merge_upstream(ctx.parent_results(step.id))
            await self._repository.mark_step_started(ctx.run_id, step.id)
            outcome = await self._dispatcher.invoke(step, upstream, ctx)
            await self._repository.mark_step_completed(
                ctx.run_id,
                step.id,
                status=outcome.status.value,
                output={"result": outcome.result} if outcome.ok else None,
                error=outcome.error,
            )
            await self._complete(ctx, step, outcome)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception(f"Run {ctx.run_id}: internal error while running step {step.id}")
            async with ctx.lock:
                ctx.in_flight.pop(step.id, None)
                ctx.finish(RunStatus.FAILED, describe_error(exc), "internal_error")

    async def _complete(self, ctx: RunContext, step: Step, outcome: StepOutcome) -> None:
        async with ctx.lock:
            ctx.in_flight.pop(step.id, None)
            late = ctx.terminated
            if outcome.ok:
                ctx.mark_completed(step.id, outcome.result, outcome.attempts, commit=not late)
            else:
                ctx.mark_failed(
                    step.id,
                    outcome.error or "Step failed",
                    outcome.error_code or "activity_failure",
                    outcome.attempts,
                    commit=not late,
                )

            if late:
                logger.info(
                    f"Run {ctx.run_id} already {ctx.status.value}; discarding late result of {step.id}"
                )
                ctx.events.info(
                    f"Discarded late result of {step.display_name} (run already {ctx.status.value})",
                    step.id,
                )
                return

            if outcome.ok:
                for child_id in ctx.graph.children(step.id):
                    if ctx.accepting_dispatches and ctx.is_ready(child_id):
                        self._dispatch(ctx, ctx.graph.step(child_id))
            else:
                self._handle_failure(ctx, step, outcome)

            if not ctx.terminated and not ctx.in_flight:
                self._settle(ctx)

    def _handle_failure(self, ctx: RunContext, step: Step, outcome: StepOutcome) -> None:
        if ctx.failure_mode is FailureMode.FAIL_FAST:
            message = f"Step {step.id} failed: {outcome.error}"
            ctx.events.error(f"Run aborted after {step.display_name} failed", step.id)
            ctx.finish(RunStatus.FAILED, message, outcome.error_code)
            return

        held_back = ctx.graph.descendants(step.id) - ctx.processed
        ctx.blocked |= held_back
        if held_back:
            ctx.events.info(
                f"Holding back {len(held_back)} downstream step(s) of {step.display_name}",
                step.id,
            )

    def _settle(self, ctx: RunContext) -> None:
        failed = [sid for sid in ctx.failed_steps() if sid in ctx.processed]
        if failed:
            first = ctx.steps[failed[0]]
            ctx.finish(
                RunStatus.FAILED,
                f"{len(failed)} step(s) failed: {', '.join(failed)}",
                first.error_code,
            )
        else:
            ctx.finish(RunStatus.COMPLETED)

    async def _finalize(self, ctx: RunContext) -> None:
        idle = ctx.idle_steps()
        if idle:
            ctx.events.info(f"Steps never reached: {', '.join(idle)}")
        running = [sid for sid, r in ctx.steps.items() if r.status is StepStatus.RUNNING]
        if running:
            ctx.events.info(f"Still running at termination: {', '.join(running)}")
        if ctx.status is RunStatus.COMPLETED:
            ctx.events.success("Workflow Run Finished")
        else:
            ctx.events.error(f"Workflow Run {ctx.status.value}: {ctx.error}")
        await self._repository.mark_run_completed(ctx.run_id, ctx.status.value, ctx.error)
        ctx.events.close()
        logger.info(f"Run {ctx.run_id} finished with status {ctx.status.value}")
