"""Fakes and definition builders shared by the test suite."""

import inspect
from typing import Any, Callable, Dict, List, Optional

from nexusflow.activities import ActivityCapability, ModelReply, ToolSpec, echo_result


class FakeActivities(ActivityCapability):
    """Capability that records every call.

    ``actions`` maps ``"service.action"`` to ``handler(parameters, upstream)``;
    unknown actions echo. ``replies`` are returned by the model in order.
    """

    def __init__(
        self,
        actions: Optional[Dict[str, Callable[..., Any]]] = None,
        replies: Optional[List[ModelReply]] = None,
        tools: Optional[Dict[str, Callable[[Dict[str, Any]], Any]]] = None,
    ) -> None:
        self.actions = dict(actions or {})
        self.replies = list(replies or [])
        self.tools = dict(tools or {})
        self.external_calls: List[Dict[str, Any]] = []
        self.model_calls: List[Dict[str, Any]] = []
        self.tool_calls: List[tuple] = []

    async def invoke_external(self, service_id, action_id, parameters, secret, upstream):
        self.external_calls.append(
            {
                "service_id": service_id,
                "action_id": action_id,
                "parameters": parameters,
                "secret": secret,
                "upstream": upstream,
            }
        )
        handler = self.actions.get(f"{service_id}.{action_id}")
        if handler is None:
            return echo_result(service_id, action_id, parameters, upstream)
        output = handler(parameters, upstream)
        if inspect.isawaitable(output):
            output = await output
        return output

    async def invoke_model(self, provider, model, messages, tools, *, secret=None, settings=None):
        self.model_calls.append(
            {
                "provider": provider,
                "model": model,
                "messages": list(messages),
                "tools": [tool.name for tool in tools],
                "secret": secret,
                "settings": settings,
            }
        )
        if self.replies:
            return self.replies.pop(0)
        return ModelReply(text="done")

    async def invoke_tool(self, tool_id, arguments):
        self.tool_calls.append((tool_id, arguments))
        output = self.tools[tool_id](arguments)
        if inspect.isawaitable(output):
            output = await output
        return output

    def tool_specs(self, tool_ids):
        return [
            ToolSpec(name=tool_id, description=f"{tool_id} tool")
            for tool_id in tool_ids
            if tool_id in self.tools
        ]


def workflow(steps, edges=(), name="test"):
    """Build a definition mapping from step dicts and ``(source, target)`` pairs."""
    return {
        "name": name,
        "steps": list(steps),
        "edges": [{"source": source, "target": target} for source, target in edges],
    }


def trigger(step_id="trigger"):
    return {"id": step_id, "kind": "trigger", "label": "Start"}


def action(step_id, service="demo", action_id="echo", **config):
    return {
        "id": step_id,
        "kind": "external_action",
        "config": {"serviceId": service, "actionId": action_id, **config},
    }
