"""Core data contracts for nexusflow workflow graphs."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .constants import (
    DEFAULT_ATTEMPT_TIMEOUT,
    DEFAULT_BACKOFF_BASE,
    DEFAULT_BACKOFF_JITTER,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_SYSTEM_PROMPT,
)


class StepKind(str, Enum):
    TRIGGER = "trigger"
    EXTERNAL_ACTION = "external_action"
    AI_AGENT = "ai_agent"
    WAIT = "wait"


class StepStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.COMPLETED, StepStatus.FAILED)


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FailureMode(str, Enum):
    """How a run reacts to the first failed step."""

    FAIL_FAST = "fail_fast"
    CONTINUE = "continue"


class _ConfigModel(BaseModel):
    """Accepts both ``snake_case`` and ``camelCase`` keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RetryPolicy(_ConfigModel):
    """Retry and timeout policy wrapped around a single step invocation."""

    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    per_attempt_timeout: float = Field(default=DEFAULT_ATTEMPT_TIMEOUT, gt=0)
    backoff_base: float = Field(default=DEFAULT_BACKOFF_BASE, ge=0)
    backoff_jitter: float = Field(default=DEFAULT_BACKOFF_JITTER, ge=0)


class TriggerConfig(_ConfigModel):
    pass


class ExternalActionConfig(_ConfigModel):
    service_id: str
    action_id: str
    credential_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("credential_id", "credentialId", "credentialsId"),
    )
    parameters: Dict[str, Any] = Field(default_factory=dict)


class AiAgentConfig(_ConfigModel):
    provider: str
    model: str
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    user_prompt: Optional[str] = None
    tools: List[str] = Field(default_factory=list)
    credential_id: Optional[str] = None
    temperature: Optional[float] = None
    max_iterations: Optional[int] = Field(default=None, ge=1)


class WaitConfig(_ConfigModel):
    # Seconds or a duration string such as "250ms", "5s", "2m".
    duration: Optional[Union[float, str]] = None


class _StepBase(_ConfigModel):
    id: str
    label: Optional[str] = None
    retry: Optional[RetryPolicy] = None

    @property
    def display_name(self) -> str:
        return self.label or self.id


class TriggerStep(_StepBase):
    kind: Literal["trigger"] = "trigger"
    config: TriggerConfig = Field(default_factory=TriggerConfig)


class ExternalActionStep(_StepBase):
    kind: Literal["external_action"] = "external_action"
    config: ExternalActionConfig


class AiAgentStep(_StepBase):
    kind: Literal["ai_agent"] = "ai_agent"
    config: AiAgentConfig


class WaitStep(_StepBase):
    kind: Literal["wait"] = "wait"
    config: WaitConfig = Field(default_factory=WaitConfig)


Step = Annotated[
    Union[TriggerStep, ExternalActionStep, AiAgentStep, WaitStep],
    Field(discriminator="kind"),
]


class Edge(BaseModel):
    """Directed dependency: ``target`` runs after ``source``."""

    model_config = ConfigDict(frozen=True)

    source: str
    target: str


class WorkflowDefinition(BaseModel):
    """Steps and edges of a workflow graph, as authored."""

    name: Optional[str] = None
    steps: List[Step] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)


class StepReport(BaseModel):
    """Per-step status exposed to callers."""

    step_id: str
    kind: StepKind
    status: StepStatus = StepStatus.IDLE
    result: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    attempts: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class RunReport(BaseModel):
    """Snapshot answered by ``WorkflowExecutor.get_status``."""

    run_id: str
    status: RunStatus
    steps: Dict[str, StepReport] = Field(default_factory=dict)
    results: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    error_code: Optional[str] = None
    idle_steps: List[str] = Field(default_factory=list)

    def status_of(self, step_id: str) -> StepStatus:
        return self.steps[step_id].status
