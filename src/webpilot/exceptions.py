"""
exceptions.py — WebPilot Unified Error Hierarchy

All WebPilot-specific exceptions live here. Every layer of the stack
raises typed subclasses of WebPilotError, never bare Exception.

Import from here, not from individual modules:
    from webpilot.exceptions import FieldValidationError, SensorTimeoutError

Hierarchy:
    WebPilotError
    ├── AgentError
    │   ├── IterationLimitError
    │   ├── CircuitBreakerError
    │   └── TaskCancelledError
    ├── SensorError
    │   ├── SensorTimeoutError
    │   └── SensorUnavailableError
    ├── OracleError
    ├── ActionError
    │   ├── FieldValidationError
    │   ├── UnrecognizedActionError
    │   └── ActionExecutionError
    ├── SafetyError
    │   └── DestructiveActionCancelled
    └── LLMError  (re-exported from brain for convenience)
        ├── LLMConnectionError
        ├── LLMRateLimitError
        ├── LLMContextError
        └── LLMInvalidRequestError
"""

from __future__ import annotations

from webpilot.brain.llm_client import (  # noqa: F401  re-export
    LLMConnectionError,
    LLMContextError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitError,
)


# ─────────────────────────────────────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────────────────────────────────────

class WebPilotError(Exception):
    """Base class for all WebPilot exceptions."""


# ─────────────────────────────────────────────────────────────────────────────
# Agent layer
# ─────────────────────────────────────────────────────────────────────────────

class AgentError(WebPilotError):
    """Base for control loop errors."""


class IterationLimitError(AgentError):
    """The control loop hit max_iterations without reaching a terminal state."""


class CircuitBreakerError(AgentError):
    """Consecutive execution failures reached max_errors."""

    def __init__(self, error_count: int, max_errors: int) -> None:
        self.error_count = error_count
        self.max_errors = max_errors
        super().__init__(
            f"Circuit breaker tripped after {error_count} consecutive errors "
            f"(max_errors={max_errors})"
        )


class TaskCancelledError(AgentError):
    """The task deadline expired or the caller cancelled the task."""


# ─────────────────────────────────────────────────────────────────────────────
# Environment sensing
# ─────────────────────────────────────────────────────────────────────────────

class SensorError(WebPilotError):
    """Base for snapshot / sensing failures."""


class SensorTimeoutError(SensorError):
    """A snapshot call timed out. Transient, retried locally."""


class SensorUnavailableError(SensorError):
    """The environment handle is closed or cancelled. Fatal for the task."""


# ─────────────────────────────────────────────────────────────────────────────
# Decision oracle
# ─────────────────────────────────────────────────────────────────────────────

class OracleError(WebPilotError):
    """The decision or assessment call to the oracle failed."""


# ─────────────────────────────────────────────────────────────────────────────
# Action execution
# ─────────────────────────────────────────────────────────────────────────────

class ActionError(WebPilotError):
    """Base for everything that makes a single action fail."""

    def __init__(self, message: str, action: str = "") -> None:
        super().__init__(message)
        self.action = action


class FieldValidationError(ActionError):
    """A required payload field is missing or out of range. Never retried."""

    def __init__(self, action: str, field: str, message: str = "") -> None:
        self.field = field
        super().__init__(
            message or f"Action '{action}' requires field '{field}'",
            action=action,
        )


class UnrecognizedActionError(ActionError):
    """The oracle proposed an action kind the executor does not know."""

    def __init__(self, action: str) -> None:
        super().__init__(f"Unrecognized action: '{action}'", action=action)


class ActionExecutionError(ActionError):
    """The environment rejected or failed the operation at runtime."""

    def __init__(self, message: str, action: str = "", target: str = "") -> None:
        super().__init__(message, action=action)
        self.target = target


# ─────────────────────────────────────────────────────────────────────────────
# Safety layer
# ─────────────────────────────────────────────────────────────────────────────

class SafetyError(WebPilotError):
    """Base for safety gate errors."""


class DestructiveActionCancelled(SafetyError):
    """The user declined confirmation for a destructive action."""

    def __init__(self, action: str, description: str = "") -> None:
        self.action = action
        self.description = description
        super().__init__(f"Destructive action cancelled: {action}")


__all__ = [
    "WebPilotError",
    "AgentError",
    "IterationLimitError",
    "CircuitBreakerError",
    "TaskCancelledError",
    "SensorError",
    "SensorTimeoutError",
    "SensorUnavailableError",
    "OracleError",
    "ActionError",
    "FieldValidationError",
    "UnrecognizedActionError",
    "ActionExecutionError",
    "SafetyError",
    "DestructiveActionCancelled",
    "LLMError",
    "LLMConnectionError",
    "LLMRateLimitError",
    "LLMContextError",
    "LLMInvalidRequestError",
]
