"""
tests/unit/test_oracle.py — LLM Decision Oracle & Prompt Tests
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from webpilot.brain.llm_client import BaseLLMClient, LLMConnectionError
from webpilot.brain.oracle import LLMDecisionOracle
from webpilot.brain.prompts import (
    DECISION_SYSTEM_PROMPT,
    build_assessment_prompt,
    build_decision_prompt,
    build_system_prompt,
)
from webpilot.brain.types import LLMResponse, Role
from webpilot.config.settings import Settings
from webpilot.exceptions import OracleError


def _oracle(reply: str = '{"action": "wait"}', error: Exception | None = None):
    client = AsyncMock(spec=BaseLLMClient)
    if error is not None:
        client.generate.side_effect = error
    else:
        client.generate.return_value = LLMResponse(content=reply)
    return LLMDecisionOracle(client, model="gpt-test"), client


# ── Prompts ───────────────────────────────────────────────────────────────────

class TestPrompts:
    def test_decision_prompt_has_task_context_history(self):
        prompt = build_decision_prompt("Find flights", "URL: https://a.test", ["click: open search"])
        assert "Find flights" in prompt
        assert "URL: https://a.test" in prompt
        assert "Recent actions:\n- click: open search" in prompt

    def test_no_history_block_when_empty(self):
        assert "Recent actions" not in build_decision_prompt("t", "c", [])

    def test_context_with_braces(self):
        assert '{"x": 1}' in build_decision_prompt("t", 'Page text:\n{"x": 1}', [])

    def test_system_prompt_lists_every_action(self):
        for action in ("navigate", "click", "fill", "wait", "extract", "press_key",
                       "switch_tab", "close_tab", "complete"):
            assert action in DECISION_SYSTEM_PROMPT

    def test_system_prompt_with_guidance(self):
        prompt = build_system_prompt("Open messages one at a time.")
        assert prompt.startswith(DECISION_SYSTEM_PROMPT)
        assert prompt.endswith("Open messages one at a time.")

    def test_system_prompt_without_guidance(self):
        assert build_system_prompt("") == DECISION_SYSTEM_PROMPT

    def test_assessment_prompt(self):
        prompt = build_assessment_prompt("click text='Delete'", "URL: u, Title: t")
        assert "click text='Delete'" in prompt
        assert "URL: u, Title: t" in prompt


# ── Oracle ────────────────────────────────────────────────────────────────────

class TestLLMDecisionOracle:
    @pytest.mark.asyncio
    async def test_decide_returns_raw_text(self):
        oracle, client = _oracle('```json\n{"action": "click"}\n```')
        raw = await oracle.decide("task", "context", ["h1"], "guidance")
        assert raw == '```json\n{"action": "click"}\n```'

        messages, cfg = client.generate.await_args.args
        assert messages[0].role == Role.SYSTEM
        assert "guidance" in messages[0].content
        assert messages[1].role == Role.USER
        assert cfg.model == "gpt-test"
        assert (cfg.temperature, cfg.max_tokens) == (0.7, 500)

    @pytest.mark.asyncio
    async def test_assessment_uses_low_temperature(self):
        oracle, client = _oracle('{"is_destructive": false}')
        await oracle.assess_destructiveness("click text='Delete'", "URL: u, Title: t")
        _, cfg = client.generate.await_args.args
        assert (cfg.temperature, cfg.max_tokens) == (0.3, 200)

    @pytest.mark.asyncio
    async def test_llm_error_becomes_oracle_error(self):
        oracle, _ = _oracle(error=LLMConnectionError("refused", provider="openai"))
        with pytest.raises(OracleError, match="decide call failed"):
            await oracle.decide("task", "context", [])

    @pytest.mark.asyncio
    async def test_empty_content_is_empty_string(self):
        oracle, client = _oracle()
        client.generate.return_value = LLMResponse(content=None)
        assert await oracle.decide("task", "context", []) == ""

    def test_from_settings(self):
        settings = Settings(OPENAI_MODEL="gpt-4o", llm={"decision_temperature": 0.2})
        oracle = LLMDecisionOracle.from_settings(AsyncMock(spec=BaseLLMClient), settings)
        assert oracle.model == "gpt-4o"
