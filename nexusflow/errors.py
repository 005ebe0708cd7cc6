"""Error taxonomy for nexusflow runs."""

from __future__ import annotations

from typing import Optional


class NexusflowError(Exception):
    """Base class for all nexusflow errors."""

    code: str = "error"
    retryable: bool = False

    def __init__(self, message: str, *, retryable: Optional[bool] = None) -> None:
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable


class InvalidGraph(NexusflowError):
    """Graph has a cycle, a dangling edge, a self-edge or duplicate ids."""

    code = "invalid_graph"


class MissingTrigger(NexusflowError):
    """Graph does not declare exactly one trigger step."""

    code = "missing_trigger"


class SecretNotFound(NexusflowError):
    """Secret store has no value for a credential id."""

    code = "secret_not_found"

    def __init__(self, credential_id: str) -> None:
        super().__init__(f"Secret not found: {credential_id}")
        self.credential_id = credential_id


class MissingCredential(NexusflowError):
    """A step references a credential that cannot be resolved."""

    code = "missing_credential"

    def __init__(self, credential_id: str) -> None:
        super().__init__(
            f"MISSING SECRET: {credential_id}. Add it to the secret store before running."
        )
        self.credential_id = credential_id


class ActivityFailure(NexusflowError):
    """An external capability returned a typed error."""

    code = "activity_failure"
    retryable = True


class ActivityTimeout(ActivityFailure):
    """A single invocation exceeded its per-attempt time limit."""

    code = "timeout"


class AgentIterationLimitExceeded(NexusflowError):
    """The agent loop hit its model-invocation or tool-call bound."""

    code = "agent_iteration_limit_exceeded"


class ToolError(NexusflowError):
    """A tool rejected its arguments or failed to produce output."""

    code = "tool_error"


class RunCancelled(NexusflowError):
    """The run was aborted before it finished."""

    code = "cancelled"


def describe_error(exc: BaseException) -> str:
    """Render an exception as a human-readable, single-line message."""
    if isinstance(exc, NexusflowError):
        return exc.message
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


def error_code(exc: BaseException) -> str:
    """Return the taxonomy code for ``exc``."""
    if isinstance(exc, NexusflowError):
        return exc.code
    return "activity_failure"
