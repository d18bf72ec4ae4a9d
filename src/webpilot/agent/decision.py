"""
agent/decision.py — Decision Model

The value exchanged between parser, safety gate and executor. A Decision is
the oracle's proposal as decoded JSON; build_action() turns it into one of
the typed action payloads below, validating the fields each kind needs
before anything touches the browser.

Decision JSON shape:
    { "action": "click", "reasoning": "...",
      "selector"?: str, "text"?: str, "value"?: str, "url"?: str,
      "wait_for"?: str, "key"?: str, "tab_index"?: int,
      "needs_input"?: bool, "input_prompt"?: str,
      "is_complete"?: bool, "summary"?: str,
      "metadata"?: {str: str} }
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from webpilot.exceptions import FieldValidationError, UnrecognizedActionError


class ActionKind(str, Enum):
    NAVIGATE = "navigate"
    CLICK = "click"
    FILL = "fill"
    WAIT = "wait"
    EXTRACT = "extract"
    PRESS_KEY = "press_key"
    SWITCH_TAB = "switch_tab"
    CLOSE_TAB = "close_tab"
    COMPLETE = "complete"


# ─────────────────────────────────────────────────────────────────────────────
# Decision
# ─────────────────────────────────────────────────────────────────────────────


class Decision(BaseModel):
    """One proposed step from the oracle."""

    model_config = ConfigDict(extra="ignore")

    action: str = ActionKind.WAIT.value
    reasoning: str = ""

    selector: Optional[str] = None
    text: Optional[str] = None
    value: Optional[str] = None
    url: Optional[str] = None
    wait_for: Optional[str] = None
    key: Optional[str] = None
    tab_index: Optional[int] = None

    needs_input: bool = False
    input_prompt: str = ""

    is_complete: bool = False
    summary: str = ""

    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("action", mode="before")
    @classmethod
    def _normalise_action(cls, v: Any) -> Any:
        if v is None:
            return ActionKind.WAIT.value
        if isinstance(v, str):
            v = v.strip().lower()
            return v or ActionKind.WAIT.value
        return v

    @field_validator("reasoning", "input_prompt", "summary", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_never_null(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def kind(self) -> Optional[ActionKind]:
        """The action as a known kind, or None when the oracle invented one."""
        try:
            return ActionKind(self.action)
        except ValueError:
            return None

    def history_line(self) -> str:
        return f"{self.action}: {self.reasoning}"

    def to_json(self) -> str:
        """Serialise in the oracle's wire format (unset payload fields omitted)."""
        return self.model_dump_json(exclude_none=True)


# ─────────────────────────────────────────────────────────────────────────────
# Typed action payloads
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class NavigateAction:
    url: str


@dataclass(frozen=True)
class ClickAction:
    text: Optional[str] = None
    selector: Optional[str] = None


@dataclass(frozen=True)
class FillAction:
    value: str
    text: Optional[str] = None
    selector: Optional[str] = None


@dataclass(frozen=True)
class PressKeyAction:
    key: str


@dataclass(frozen=True)
class SwitchTabAction:
    tab_index: int


@dataclass(frozen=True)
class CloseTabAction:
    tab_index: int


@dataclass(frozen=True)
class WaitAction:
    wait_for: Optional[str] = None


@dataclass(frozen=True)
class ExtractAction:
    pass


@dataclass(frozen=True)
class CompleteAction:
    pass


Action = Union[
    NavigateAction, ClickAction, FillAction, PressKeyAction, SwitchTabAction,
    CloseTabAction, WaitAction, ExtractAction, CompleteAction,
]


def _present(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    return v if v.strip() else None


def _require(decision: Decision, field: str) -> str:
    value = _present(getattr(decision, field))
    if value is None:
        raise FieldValidationError(decision.action, field)
    return value


def _require_tab_index(decision: Decision) -> int:
    if decision.tab_index is None:
        raise FieldValidationError(decision.action, "tab_index")
    if decision.tab_index < 1:
        raise FieldValidationError(
            decision.action,
            "tab_index",
            f"Action '{decision.action}' requires tab_index >= 1, got {decision.tab_index}",
        )
    return decision.tab_index


def _build_click(d: Decision) -> ClickAction:
    text, selector = _present(d.text), _present(d.selector)
    if text is None and selector is None:
        raise FieldValidationError(d.action, "text", "Action 'click' requires 'text' or 'selector'")
    return ClickAction(text=text, selector=selector)


def _build_fill(d: Decision) -> FillAction:
    value = _require(d, "value")
    text, selector = _present(d.text), _present(d.selector)
    if text is None and selector is None:
        raise FieldValidationError(d.action, "text", "Action 'fill' requires 'text' or 'selector'")
    return FillAction(value=value, text=text, selector=selector)


_BUILDERS: dict[ActionKind, Callable[[Decision], Action]] = {
    ActionKind.NAVIGATE:   lambda d: NavigateAction(url=_require(d, "url")),
    ActionKind.CLICK:      _build_click,
    ActionKind.FILL:       _build_fill,
    ActionKind.PRESS_KEY:  lambda d: PressKeyAction(key=_require(d, "key")),
    ActionKind.SWITCH_TAB: lambda d: SwitchTabAction(tab_index=_require_tab_index(d)),
    ActionKind.CLOSE_TAB:  lambda d: CloseTabAction(tab_index=_require_tab_index(d)),
    ActionKind.WAIT:       lambda d: WaitAction(wait_for=_present(d.wait_for)),
    ActionKind.EXTRACT:    lambda d: ExtractAction(),
    ActionKind.COMPLETE:   lambda d: CompleteAction(),
}


def build_action(decision: Decision) -> Action:
    """
    Validate a decision's payload for its kind and return the typed action.

    Raises:
        UnrecognizedActionError: the action string is not a known kind.
        FieldValidationError:    a field the kind requires is missing or invalid.
    """
    kind = decision.kind
    if kind is None:
        raise UnrecognizedActionError(decision.action)
    return _BUILDERS[kind](decision)
