"""
tests/unit/test_decision.py — Decision Model & Action Payload Tests
"""

from __future__ import annotations

import json

import pytest

from webpilot.agent.decision import (
    ActionKind,
    ClickAction,
    CloseTabAction,
    CompleteAction,
    Decision,
    ExtractAction,
    FillAction,
    NavigateAction,
    PressKeyAction,
    SwitchTabAction,
    WaitAction,
    build_action,
)
from webpilot.exceptions import FieldValidationError, UnrecognizedActionError


# ── Decision ──────────────────────────────────────────────────────────────────

class TestDecision:
    def test_defaults(self):
        d = Decision()
        assert d.action == "wait"
        assert d.is_complete is False
        assert d.needs_input is False
        assert d.metadata == {}

    def test_kind_known(self):
        assert Decision(action="press_key").kind == ActionKind.PRESS_KEY

    def test_kind_unknown(self):
        assert Decision(action="scroll").kind is None

    def test_empty_action_becomes_wait(self):
        assert Decision(action="   ").action == "wait"

    def test_unknown_fields_ignored(self):
        d = Decision.model_validate({"action": "wait", "confidence": 0.9})
        assert not hasattr(d, "confidence")

    def test_history_line(self):
        d = Decision(action="click", text="Login", reasoning="open the login form")
        assert d.history_line() == "click: open the login form"

    def test_to_json_omits_unset_payload(self):
        data = json.loads(Decision(action="navigate", url="https://a.test").to_json())
        assert data["url"] == "https://a.test"
        assert "selector" not in data
        assert "tab_index" not in data


# ── build_action ──────────────────────────────────────────────────────────────

class TestBuildAction:
    def test_navigate(self):
        assert build_action(Decision(action="navigate", url="a.test")) == NavigateAction(url="a.test")

    def test_navigate_missing_url(self):
        with pytest.raises(FieldValidationError) as exc_info:
            build_action(Decision(action="navigate"))
        assert exc_info.value.field == "url"
        assert "url" in str(exc_info.value)

    def test_blank_url_counts_as_missing(self):
        with pytest.raises(FieldValidationError):
            build_action(Decision(action="navigate", url="   "))

    def test_click_by_text_or_selector(self):
        assert build_action(Decision(action="click", text="Go")) == ClickAction(text="Go")
        assert build_action(Decision(action="click", selector="#go")) == ClickAction(selector="#go")

    def test_click_needs_target(self):
        with pytest.raises(FieldValidationError, match="'text' or 'selector'"):
            build_action(Decision(action="click"))

    def test_fill(self):
        action = build_action(Decision(action="fill", text="Email", value="a@b.c"))
        assert action == FillAction(value="a@b.c", text="Email")

    def test_fill_needs_value(self):
        with pytest.raises(FieldValidationError) as exc_info:
            build_action(Decision(action="fill", text="Email"))
        assert exc_info.value.field == "value"

    def test_fill_needs_target(self):
        with pytest.raises(FieldValidationError):
            build_action(Decision(action="fill", value="x"))

    def test_press_key(self):
        assert build_action(Decision(action="press_key", key="Enter")) == PressKeyAction(key="Enter")

    def test_press_key_missing(self):
        with pytest.raises(FieldValidationError) as exc_info:
            build_action(Decision(action="press_key"))
        assert exc_info.value.field == "key"

    def test_tabs(self):
        assert build_action(Decision(action="switch_tab", tab_index=2)) == SwitchTabAction(2)
        assert build_action(Decision(action="close_tab", tab_index=1)) == CloseTabAction(1)

    @pytest.mark.parametrize("index", [0, -1])
    def test_tab_index_must_be_positive(self, index):
        with pytest.raises(FieldValidationError, match=">= 1"):
            build_action(Decision(action="switch_tab", tab_index=index))

    def test_tab_index_missing(self):
        with pytest.raises(FieldValidationError):
            build_action(Decision(action="close_tab"))

    def test_wait_optional_selector(self):
        assert build_action(Decision(action="wait")) == WaitAction()
        assert build_action(Decision(action="wait", wait_for=".done")) == WaitAction(".done")

    def test_extract_and_complete_need_nothing(self):
        assert build_action(Decision(action="extract")) == ExtractAction()
        assert build_action(Decision(action="complete")) == CompleteAction()

    def test_unknown_action(self):
        with pytest.raises(UnrecognizedActionError, match="scroll"):
            build_action(Decision(action="scroll"))
