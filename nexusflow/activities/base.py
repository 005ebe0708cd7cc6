"""Capability interface the interpreter uses to reach the outside world."""

from __future__ import annotations

import abc
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ChatMessage(BaseModel):
    """Provider-neutral conversation message."""

    role: Literal["system", "user", "assistant", "tool"]
    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None


class ModelReply(BaseModel):
    """Text and requested tool calls from one model invocation."""

    text: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)


class ToolSpec(BaseModel):
    """Tool description bound to a model invocation."""

    name: str
    description: str
    parameters_schema: Dict[str, Any] = Field(default_factory=dict)


class ActivityCapability(metaclass=abc.ABCMeta):
    """Abstract capability for external calls, model calls and tool calls."""

    @abc.abstractmethod
    async def invoke_external(
        self,
        service_id: str,
        action_id: str,
        parameters: Dict[str, Any],
        secret: Optional[str],
        upstream: Dict[str, Any],
    ) -> Any:
        """Run one external service action.

        Raises:
            ActivityFailure: With a human-readable message on typed errors.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def invoke_model(
        self,
        provider: str,
        model: str,
        messages: List[ChatMessage],
        tools: List[ToolSpec],
        *,
        secret: Optional[str] = None,
        settings: Optional[Dict[str, Any]] = None,
    ) -> ModelReply:
        """Invoke a chat model once and return its reply."""
        raise NotImplementedError

    @abc.abstractmethod
    async def invoke_tool(self, tool_id: str, arguments: Dict[str, Any]) -> str:
        """Run a catalog tool and return its textual output."""
        raise NotImplementedError

    def tool_specs(self, tool_ids: List[str]) -> List[ToolSpec]:
        """Specs for the known tools among ``tool_ids``; unknown ids are dropped."""
        return []
