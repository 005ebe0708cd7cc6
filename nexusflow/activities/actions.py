"""Registered-function table for external service actions."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ..errors import ActivityFailure

logger = logging.getLogger(__name__)

ActionHandler = Callable[
    [Dict[str, Any], Optional[str], Dict[str, Any]], Awaitable[Any]
]


def echo_result(
    service_id: str,
    action_id: str,
    parameters: Dict[str, Any],
    upstream: Dict[str, Any],
) -> Dict[str, Any]:
    """Result proving that parameters and upstream data reached the action."""
    return {
        "status": "executed",
        "service": service_id,
        "action": action_id,
        "input_params": parameters,
        "upstream_data": upstream,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class ActionRegistry:
    """Handlers keyed by ``(service_id, action_id)``.

    Handlers receive ``(parameters, secret, upstream)`` and return any
    JSON-like value. Lookups never reflect into client objects: an action
    that is not registered either fails or, with ``simulate_unregistered``,
    returns an echo result.
    """

    def __init__(self, simulate_unregistered: bool = False) -> None:
        self._handlers: Dict[Tuple[str, str], ActionHandler] = {}
        self.simulate_unregistered = simulate_unregistered

    def register(
        self, service_id: str, action_id: str
    ) -> Callable[[ActionHandler], ActionHandler]:
        """Decorator registering ``handler`` for ``service_id.action_id``."""

        def decorator(handler: ActionHandler) -> ActionHandler:
            self.add(service_id, action_id, handler)
            return handler

        return decorator

    def add(self, service_id: str, action_id: str, handler: ActionHandler) -> None:
        key = (service_id, action_id)
        if key in self._handlers:
            logger.warning(f"Replacing handler for action {service_id}.{action_id}")
        self._handlers[key] = handler

    def get(self, service_id: str, action_id: str) -> Optional[ActionHandler]:
        return self._handlers.get((service_id, action_id))

    def actions(self) -> List[str]:
        return sorted(f"{service}.{action}" for service, action in self._handlers)

    async def invoke(
        self,
        service_id: str,
        action_id: str,
        parameters: Dict[str, Any],
        secret: Optional[str],
        upstream: Dict[str, Any],
    ) -> Any:
        handler = self.get(service_id, action_id)
        if handler is None:
            if self.simulate_unregistered:
                logger.info(f"Simulating unregistered action {service_id}.{action_id}")
                return echo_result(service_id, action_id, parameters, upstream)
            raise ActivityFailure(
                f"No handler registered for action {service_id}.{action_id}",
                retryable=False,
            )
        return await handler(parameters, secret, upstream)


def register_demo_actions(registry: ActionRegistry) -> None:
    """Register the ``demo`` service used by examples and smoke runs."""

    @registry.register("demo", "echo")
    async def _echo(
        parameters: Dict[str, Any], secret: Optional[str], upstream: Dict[str, Any]
    ) -> Dict[str, Any]:
        return echo_result("demo", "echo", parameters, upstream)

    @registry.register("demo", "fail")
    async def _fail(
        parameters: Dict[str, Any], secret: Optional[str], upstream: Dict[str, Any]
    ) -> Dict[str, Any]:
        raise ActivityFailure(
            str(parameters.get("message", "demo.fail requested")),
            retryable=bool(parameters.get("retryable", False)),
        )
