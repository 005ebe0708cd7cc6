"""Generic HTTP action backed by httpx."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import ActivityFailure
from .actions import ActionRegistry

logger = logging.getLogger(__name__)


class HttpAction:
    """``http.request``: call an HTTP endpoint and return its response.

    Parameters: ``url`` (required), ``method`` (default ``GET``),
    ``headers``, ``params`` and ``json``. The resolved secret, when the step
    has one, is sent as a bearer token.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout = timeout
        self._transport = transport

    async def __call__(
        self, parameters: Dict[str, Any], secret: Optional[str], upstream: Dict[str, Any]
    ) -> Dict[str, Any]:
        url = parameters.get("url")
        if not url:
            raise ActivityFailure("http.request requires a 'url' parameter", retryable=False)
        method = str(parameters.get("method", "GET")).upper()
        headers = dict(parameters.get("headers") or {})
        if secret:
            headers.setdefault("Authorization", f"Bearer {secret}")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.request(
                    method,
                    url,
                    headers=headers,
                    params=parameters.get("params"),
                    json=parameters.get("json"),
                )
        except httpx.HTTPError as exc:
            raise ActivityFailure(f"HTTP {method} {url} failed: {exc}") from exc

        if response.status_code >= 400:
            raise ActivityFailure(
                f"HTTP {method} {url} returned {response.status_code}: {response.text[:200]}",
                retryable=response.status_code >= 500,
            )

        logger.debug(f"HTTP {method} {url} -> {response.status_code}")
        try:
            body: Any = response.json()
        except ValueError:
            body = response.text
        return {"status_code": response.status_code, "body": body}


def register_http_actions(
    registry: ActionRegistry,
    timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> None:
    registry.add("http", "request", HttpAction(timeout=timeout, transport=transport))
