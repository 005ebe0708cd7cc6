"""Concrete activity capabilities and their factory."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..config import NexusflowConfig, load_config
from .actions import ActionRegistry, echo_result, register_demo_actions
from .base import ActivityCapability, ChatMessage, ModelReply, ToolCall, ToolSpec
from .http import HttpAction, register_http_actions
from .models import PydanticAIModelClient
from .tools import ToolCatalog, default_catalog


class DefaultActivities(ActivityCapability):
    """Activity capability composed of an action registry, a tool catalog
    and a model client."""

    def __init__(
        self,
        actions: Optional[ActionRegistry] = None,
        tools: Optional[ToolCatalog] = None,
        model_client: Optional[PydanticAIModelClient] = None,
    ) -> None:
        self.actions = actions or ActionRegistry()
        self.tools = tools or default_catalog()
        self.model_client = model_client or PydanticAIModelClient()

    async def invoke_external(
        self,
        service_id: str,
        action_id: str,
        parameters: Dict[str, Any],
        secret: Optional[str],
        upstream: Dict[str, Any],
    ) -> Any:
        return await self.actions.invoke(service_id, action_id, parameters, secret, upstream)

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
        return await self.model_client(
            provider, model, messages, tools, secret=secret, settings=settings
        )

    async def invoke_tool(self, tool_id: str, arguments: Dict[str, Any]) -> str:
        return await self.tools.invoke(tool_id, arguments)

    def tool_specs(self, tool_ids: List[str]) -> List[ToolSpec]:
        return self.tools.select(tool_ids)


def get_activities(config: Optional[NexusflowConfig] = None) -> DefaultActivities:
    """Factory function returning activities with the built-in actions and tools."""

    config = config or load_config()
    registry = ActionRegistry(simulate_unregistered=config.activities.simulate_unregistered)
    register_demo_actions(registry)
    register_http_actions(registry, timeout=config.activities.http_timeout)
    return DefaultActivities(actions=registry)


__all__ = [
    "ActionRegistry",
    "ActivityCapability",
    "ChatMessage",
    "DefaultActivities",
    "HttpAction",
    "ModelReply",
    "PydanticAIModelClient",
    "ToolCall",
    "ToolCatalog",
    "ToolSpec",
    "default_catalog",
    "echo_result",
    "get_activities",
]
