"""Data models for persisted run state."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class StepRecord(BaseModel):
    """Record of an individual step invocation."""

    id: Optional[int] = None
    run_id: str
    step_id: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    status: Optional[str] = None
    output: Optional[dict[str, Any]] = None
    error: Optional[str] = None


class RunRecord(BaseModel):
    """Persisted run of a workflow definition."""

    run_id: str
    definition: dict[str, Any] = Field(default_factory=dict)
    payload: dict[str, Any] | None = None
    status: str = "running"
    error: Optional[str] = None
    steps: list[StepRecord] = Field(default_factory=list)
