"""Activity dispatcher: runs one step according to its kind."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Union

from .activities.base import ActivityCapability
from .agent import AgentLoop
from .config import AgentSettings
from .constants import DEFAULT_WAIT_SECONDS
from .context import RunContext
from .contracts import (
    AiAgentStep,
    ExternalActionStep,
    RetryPolicy,
    Step,
    StepKind,
    StepStatus,
    TriggerStep,
    WaitStep,
)
from .credentials import SecretResolver
from .errors import MissingCredential, SecretNotFound, describe_error, error_code
from .utils.retry import retry_async

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$", re.IGNORECASE)
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(
    value: Union[float, int, str, None], default: float = DEFAULT_WAIT_SECONDS
) -> float:
    """Parse seconds or ``"250ms"``/``"5s"``/``"2m"``/``"1h"``; fall back to ``default``."""
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, (int, float)):
        return float(value) if value >= 0 else default
    match = _DURATION_RE.match(str(value))
    if not match:
        logger.warning(f"Invalid wait duration {value!r}; using {default}s")
        return default
    amount, unit = match.groups()
    return float(amount) * _UNIT_SECONDS[(unit or "s").lower()]


def merge_upstream(parent_results: Iterable[Any]) -> Dict[str, Any]:
    """Shallow-merge parent results in order; later parents win on key clashes.

    Results that are not mappings carry no named keys and are skipped.
    """
    merged: Dict[str, Any] = {}
    for result in parent_results:
        if isinstance(result, dict):
            merged.update(result)
        elif result is not None:
            logger.debug(f"Skipping non-mapping upstream result of type {type(result).__name__}")
    return merged


@dataclass
class StepOutcome:
    """Result or failure of one dispatcher invocation."""

    step_id: str
    status: StepStatus
    result: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.status is StepStatus.COMPLETED


class _AttemptCounter:
    def __init__(self) -> None:
        self.count = 1

    def __call__(self, attempt: int) -> None:
        self.count = attempt


Handler = Callable[[Any, Dict[str, Any], RunContext, _AttemptCounter], Awaitable[Any]]


class ActivityDispatcher:
    """Invoke the capability matching a step's kind and normalize the outcome.

    Every call to :meth:`invoke` appends exactly one event to the run's
    event log and never raises for step-level failures; those come back as
    a ``FAILED`` :class:`StepOutcome` with a human-readable message.
    """

    def __init__(
        self,
        activities: ActivityCapability,
        resolver: SecretResolver,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        agent_settings: Optional[AgentSettings] = None,
        default_wait: float = DEFAULT_WAIT_SECONDS,
    ) -> None:
        self._activities = activities
        self._resolver = resolver
        self.retry_policy = retry_policy or RetryPolicy()
        self.agent_settings = agent_settings or AgentSettings()
        self.default_wait = default_wait
        self._handlers: Dict[StepKind, Handler] = {
            StepKind.TRIGGER: self._run_trigger,
            StepKind.EXTERNAL_ACTION: self._run_external_action,
            StepKind.AI_AGENT: self._run_ai_agent,
            StepKind.WAIT: self._run_wait,
        }
        missing = set(StepKind) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No dispatcher handler for kinds: {sorted(missing)}")

    async def invoke(
        self, step: Step, upstream: Dict[str, Any], run: RunContext
    ) -> StepOutcome:
        handler = self._handlers[StepKind(step.kind)]
        attempts = _AttemptCounter()
        try:
            result = await handler(step, upstream, run, attempts)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            message = describe_error(exc)
            logger.error(f"Step {step.id} failed in run {run.run_id}: {message}")
            run.events.error(message, step.id)
            return StepOutcome(
                step_id=step.id,
                status=StepStatus.FAILED,
                error=message,
                error_code=error_code(exc),
                attempts=attempts.count,
            )

        if step.kind == StepKind.TRIGGER:
            run.events.success("Trigger Activated", step.id)
        else:
            run.events.success(f"Completed: {step.display_name}", step.id)
        return StepOutcome(
            step_id=step.id,
            status=StepStatus.COMPLETED,
            result=result,
            attempts=attempts.count,
        )

    # ------------------------------------------------------------------
    def _policy_for(self, step: Step) -> RetryPolicy:
        return step.retry or self.retry_policy

    def _secret_for(self, credential_id: Optional[str]) -> Optional[str]:
        if not credential_id:
            return None
        try:
            return self._resolver.resolve(credential_id)
        except SecretNotFound:
            raise MissingCredential(credential_id) from None

    async def _run_trigger(
        self, step: TriggerStep, upstream: Dict[str, Any], run: RunContext, attempts: _AttemptCounter
    ) -> Dict[str, Any]:
        return {**run.payload, "startedAt": datetime.now(timezone.utc).isoformat()}

    async def _run_external_action(
        self,
        step: ExternalActionStep,
        upstream: Dict[str, Any],
        run: RunContext,
        attempts: _AttemptCounter,
    ) -> Any:
        config = step.config
        secret = self._secret_for(config.credential_id)
        return await retry_async(
            lambda: self._activities.invoke_external(
                config.service_id,
                config.action_id,
                dict(config.parameters),
                secret,
                upstream,
            ),
            self._policy_for(step),
            label=f"{config.service_id}.{config.action_id} ({step.id})",
            on_attempt=attempts,
        )

    async def _run_ai_agent(
        self, step: AiAgentStep, upstream: Dict[str, Any], run: RunContext, attempts: _AttemptCounter
    ) -> Dict[str, Any]:
        config = step.config
        secret = self._secret_for(config.credential_id)
        user_prompt = config.user_prompt or json.dumps(upstream, default=str)
        settings = {"temperature": config.temperature} if config.temperature is not None else None

        async def attempt() -> Dict[str, Any]:
            loop = AgentLoop(
                self._activities,
                max_iterations=config.max_iterations or self.agent_settings.max_iterations,
                max_tool_calls=self.agent_settings.max_tool_calls,
            )
            result = await loop.run(
                provider=config.provider,
                model=config.model,
                system_prompt=config.system_prompt,
                user_prompt=user_prompt,
                tools=config.tools,
                secret=secret,
                settings=settings,
            )
            return result.model_dump()

        return await retry_async(
            attempt,
            self._policy_for(step),
            label=f"{config.provider}:{config.model} ({step.id})",
            on_attempt=attempts,
        )

    async def _run_wait(
        self, step: WaitStep, upstream: Dict[str, Any], run: RunContext, attempts: _AttemptCounter
    ) -> Dict[str, Any]:
        seconds = parse_duration(step.config.duration, self.default_wait)
        logger.debug(f"Step {step.id} waiting {seconds}s")
        await asyncio.sleep(seconds)
        return {"waited": True}
