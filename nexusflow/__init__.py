"""nexusflow: workflow graphs of triggers, service actions and AI agents."""

from .activities import ActivityCapability, DefaultActivities, get_activities
from .contracts import (
    FailureMode,
    RetryPolicy,
    RunReport,
    RunStatus,
    StepKind,
    StepStatus,
    WorkflowDefinition,
)
from .credentials import SecretResolver, get_secret_store
from .events import LoggingObserver, RunEvent
from .execute import WorkflowExecutor
from .graph import WorkflowGraph, build_graph, load_definition
from .persistence import get_repository

__version__ = "0.1.0"
__all__ = [
    "ActivityCapability",
    "DefaultActivities",
    "FailureMode",
    "LoggingObserver",
    "RetryPolicy",
    "RunEvent",
    "RunReport",
    "RunStatus",
    "SecretResolver",
    "StepKind",
    "StepStatus",
    "WorkflowDefinition",
    "WorkflowExecutor",
    "WorkflowGraph",
    "build_graph",
    "get_activities",
    "get_repository",
    "get_secret_store",
    "load_definition",
]
