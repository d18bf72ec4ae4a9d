"""
agent/state.py — Per-Task Run State and Results

AgentRunState is created at the start of one task execution, owned by a
single Orchestrator call, and discarded when that call returns. TaskResult
is what the caller gets back: every terminal outcome, including failures,
arrives as a value with a named reason rather than an exception.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from webpilot.agent.history import ActionHistory


class TaskStatus(str, Enum):
    COMPLETED = "completed"
    NEEDS_INPUT = "needs_input"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FailureReason(str, Enum):
    ITERATION_LIMIT = "iteration_limit"
    CIRCUIT_BREAKER = "circuit_breaker"
    SENSOR_UNAVAILABLE = "sensor_unavailable"
    SENSOR_FAILURE = "sensor_failure"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    CANCELLED = "cancelled"
    INTERNAL_ERROR = "internal_error"


@dataclass
class AgentRunState:
    task: str
    category: str = "generic"
    history: ActionHistory = field(default_factory=ActionHistory)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    iteration: int = 0
    error_count: int = 0
    started_at: float = field(default_factory=time.monotonic)

    def record_failure(self) -> int:
        self.error_count += 1
        return self.error_count

    def record_success(self) -> None:
        self.error_count = 0

    @property
    def elapsed_ms(self) -> float:
        return round((time.monotonic() - self.started_at) * 1000, 1)


@dataclass
class TaskResult:
    status: TaskStatus
    task: str
    summary: str = ""
    input_prompt: str = ""
    reason: Optional[FailureReason] = None
    error: str = ""
    iterations: int = 0
    error_count: int = 0
    history: list[str] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    @classmethod
    def from_state(
        cls,
        state: AgentRunState,
        status: TaskStatus,
        *,
        summary: str = "",
        input_prompt: str = "",
        reason: Optional[FailureReason] = None,
        error: str = "",
    ) -> "TaskResult":
        return cls(
            status=status,
            task=state.task,
            summary=summary,
            input_prompt=input_prompt,
            reason=reason,
            error=error,
            iterations=state.iteration,
            error_count=state.error_count,
            history=state.history.entries,
            duration_ms=state.elapsed_ms,
        )
