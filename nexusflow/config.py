from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import DEFAULT_AGENT_MAX_ITERATIONS, DEFAULT_WAIT_SECONDS
from .contracts import FailureMode, RetryPolicy


class AgentSettings(BaseModel):
    """Bounds for the AI agent tool-use loop."""

    max_iterations: int = Field(default=DEFAULT_AGENT_MAX_ITERATIONS, ge=1)
    max_tool_calls: Optional[int] = Field(default=None, ge=1)


class RunnerSettings(BaseModel):
    """Scheduler behaviour."""

    failure_mode: FailureMode = FailureMode.FAIL_FAST
    default_wait: float = Field(default=DEFAULT_WAIT_SECONDS, ge=0)


class SecretsSettings(BaseModel):
    """Secret store selection."""

    backend: Literal["inmemory", "env"] = "env"
    env_prefix: str = ""


class ActivitySettings(BaseModel):
    """Behaviour of the built-in activity capabilities."""

    simulate_unregistered: bool = False
    http_timeout: float = 30.0


class NexusflowConfig(BaseModel):
    """Top-level configuration model."""

    retry: RetryPolicy = RetryPolicy()
    agent: AgentSettings = AgentSettings()
    runner: RunnerSettings = RunnerSettings()
    secrets: SecretsSettings = SecretsSettings()
    activities: ActivitySettings = ActivitySettings()
    database_url: Optional[str] = None


def load_config(path: Optional[str] = None) -> NexusflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to NEXUSFLOW_CONFIG env
            variable or 'nexusflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("NEXUSFLOW_CONFIG", "nexusflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = NexusflowConfig(**data)
    else:
        config = NexusflowConfig()

    env_db_url = os.getenv("NEXUSFLOW_DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_secrets = os.getenv("NEXUSFLOW_SECRETS_BACKEND")
    if env_secrets:
        config.secrets = config.secrets.model_copy(update={"backend": env_secrets})
    return config
