"""Bounded tool-use loop for AI agent steps."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..activities.base import ActivityCapability, ChatMessage, ModelReply, ToolSpec
from ..constants import DEFAULT_AGENT_MAX_ITERATIONS
from ..errors import AgentIterationLimitExceeded, ToolError

logger = logging.getLogger(__name__)


class AgentState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    AWAITING_TOOL = "awaiting_tool"
    DONE = "done"
    FAILED = "failed"


class TraceEntry(BaseModel):
    role: str
    content: str


class AgentResult(BaseModel):
    """Final answer plus the full conversation for observability."""

    answer: str
    trace: List[TraceEntry] = Field(default_factory=list)
    iterations: int = 0
    tool_calls: int = 0


class AgentLoop:
    """Drive model and tool invocations until the model answers.

    The loop alternates between ``AWAITING_MODEL`` and ``AWAITING_TOOL``
    while the model keeps requesting tools, and finishes in ``DONE`` on the
    first reply without tool requests. Requests for tools outside the
    enabled set are not executed; they get an error tool reply. At most
    ``max_iterations`` model invocations (and, if set, ``max_tool_calls``
    tool executions) happen per run; exceeding either bound moves the loop
    to ``FAILED``.
    """

    def __init__(
        self,
        activities: ActivityCapability,
        max_iterations: int = DEFAULT_AGENT_MAX_ITERATIONS,
        max_tool_calls: Optional[int] = None,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self._activities = activities
        self.max_iterations = max_iterations
        self.max_tool_calls = max_tool_calls
        self.state = AgentState.AWAITING_MODEL

    async def run(
        self,
        *,
        provider: str,
        model: str,
        system_prompt: str,
        user_prompt: str,
        tools: Optional[List[str]] = None,
        secret: Optional[str] = None,
        settings: Optional[Dict[str, Any]] = None,
    ) -> AgentResult:
        enabled: Dict[str, ToolSpec] = {
            spec.name: spec for spec in self._activities.tool_specs(list(tools or []))
        }
        messages = [
            ChatMessage(role="system", content=system_prompt),
            ChatMessage(role="user", content=user_prompt),
        ]
        self.state = AgentState.AWAITING_MODEL
        iterations = 0
        tool_calls = 0
        reply = ModelReply()

        while True:
            if self.state is AgentState.AWAITING_MODEL:
                if iterations >= self.max_iterations:
                    self.state = AgentState.FAILED
                    raise AgentIterationLimitExceeded(
                        f"Agent did not produce a final answer within {self.max_iterations} model invocations"
                    )
                iterations += 1
                reply = await self._activities.invoke_model(
                    provider,
                    model,
                    messages,
                    list(enabled.values()),
                    secret=secret,
                    settings=settings,
                )
                messages.append(
                    ChatMessage(role="assistant", content=reply.text, tool_calls=reply.tool_calls)
                )
                self.state = AgentState.AWAITING_TOOL if reply.tool_calls else AgentState.DONE

            elif self.state is AgentState.AWAITING_TOOL:
                for call in reply.tool_calls:
                    if call.name not in enabled:
                        logger.warning(f"Model requested tool {call.name} which is not enabled; skipping")
                        # every tool call needs a matching tool reply
                        messages.append(
                            ChatMessage(
                                role="tool",
                                content=f"Error: tool {call.name} is not enabled",
                                tool_call_id=call.id,
                                tool_name=call.name,
                            )
                        )
                        continue
                    if self.max_tool_calls is not None and tool_calls >= self.max_tool_calls:
                        self.state = AgentState.FAILED
                        raise AgentIterationLimitExceeded(
                            f"Agent exceeded the limit of {self.max_tool_calls} tool calls"
                        )
                    tool_calls += 1
                    try:
                        output = await self._activities.invoke_tool(call.name, call.arguments)
                    except ToolError as exc:
                        output = f"Error: {exc.message}"
                    logger.debug(f"Tool {call.name} returned {output!r}")
                    messages.append(
                        ChatMessage(
                            role="tool",
                            content=output,
                            tool_call_id=call.id,
                            tool_name=call.name,
                        )
                    )
                self.state = AgentState.AWAITING_MODEL

            else:
                logger.info(
                    f"Agent finished after {iterations} model invocations and {tool_calls} tool calls"
                )
                return AgentResult(
                    answer=reply.text,
                    trace=[TraceEntry(role=m.role, content=m.content) for m in messages],
                    iterations=iterations,
                    tool_calls=tool_calls,
                )
