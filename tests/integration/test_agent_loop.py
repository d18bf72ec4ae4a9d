"""
tests/integration/test_agent_loop.py — Full Control Loop Integration

Wires Settings → LLMDecisionOracle (mocked LLM client) → SafetyGate →
Orchestrator against the in-memory FakeBrowser. Only the model replies and
the human's answers are scripted; parsing, prompting, gating, execution and
history are the real components.

Scenarios:
  - Mailbox task: open the spam folder, open a message, delete it after
    confirmation
  - Job search: a mass-apply step is rejected by the strategy, a single
    application is confirmed, the task completes
  - Flaky model: malformed and failing replies recover without tripping
    the breaker
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from tests.fakes import FakeBrowser, SleepRecorder
from webpilot.agent.orchestrator import Orchestrator
from webpilot.agent.state import TaskStatus
from webpilot.brain.llm_client import BaseLLMClient, LLMConnectionError
from webpilot.brain.oracle import LLMDecisionOracle
from webpilot.brain.types import LLMResponse
from webpilot.browser.types import FullSnapshot, InputField, Link, QuickSnapshot
from webpilot.config.settings import Settings
from webpilot.exceptions import SensorTimeoutError
from webpilot.safety.gate import ConfirmationRequest, SafetyGate

pytestmark = pytest.mark.integration


def _reply(**fields) -> LLMResponse:
    return LLMResponse(content=json.dumps(fields, ensure_ascii=False))


def _assessment(destructive: bool, description: str = "", question: str = "") -> LLMResponse:
    return LLMResponse(content=json.dumps({
        "is_destructive": destructive,
        "description": description,
        "confirmation_question": question,
    }))


class _Human:
    def __init__(self, *answers: str):
        self.answers = list(answers)
        self.requests: list[ConfirmationRequest] = []

    async def __call__(self, request: ConfirmationRequest) -> str:
        self.requests.append(request)
        return self.answers.pop(0)


def _wire(browser: FakeBrowser, replies: list, human: _Human):
    """Build the real stack from Settings with a scripted LLM client."""
    settings = Settings(OPENAI_API_KEY="sk-test")
    client = AsyncMock(spec=BaseLLMClient)
    client.generate.side_effect = replies

    oracle = LLMDecisionOracle.from_settings(client, settings)
    gate = SafetyGate.from_settings(oracle, human, settings)
    orchestrator = Orchestrator.from_settings(browser, oracle, gate, settings)
    # keep backoff and pauses instant
    orchestrator._sleep = SleepRecorder()
    orchestrator._executor._sleep = orchestrator._sleep
    return orchestrator, client


# ── Mailbox ───────────────────────────────────────────────────────────────────

class TestMailboxTask:
    @pytest.mark.asyncio
    async def test_delete_one_spam_message(self):
        browser = FakeBrowser("https://mail.test/inbox", "Inbox")
        browser.quick_queue.append(QuickSnapshot(
            url="https://mail.test/inbox",
            title="Inbox",
            links=[Link(text="Spam", href="/spam")],
            buttons=["Compose"],
        ))
        human = _Human("да")
        replies = [
            _reply(action="click", text="Spam", reasoning="open the spam folder"),
            _reply(action="click", text="You won a prize", reasoning="open the suspicious message"),
            _reply(action="click", text="Delete", reasoning="remove this spam message"),
            _assessment(True, "Moves the message to trash", "Delete this message?"),
            _reply(action="complete", is_complete=True, summary="Deleted 1 spam message"),
        ]
        orchestrator, client = _wire(browser, replies, human)

        result = await orchestrator.execute("Проверь почту и удали спам")

        assert result.status == TaskStatus.COMPLETED
        assert result.summary == "Deleted 1 spam message"
        assert [c[1] for c in browser.calls_to("click_by_text")] == ["Spam", "You won a prize", "Delete"]
        assert human.requests[0].question == "Delete this message?"
        assert result.history == [
            "click: open the spam folder",
            "click: open the suspicious message",
            "click: remove this spam message",
        ]

        # mailbox guidance reached the system prompt, page context the user prompt
        first_messages = client.generate.await_args_list[0].args[0]
        assert "mailbox task" in first_messages[0].content
        assert "Spam -> /spam" in first_messages[1].content


# ── Job search ────────────────────────────────────────────────────────────────

class TestJobSearchTask:
    @pytest.mark.asyncio
    async def test_strategy_and_gate(self):
        browser = FakeBrowser("https://hh.ru", "Jobs")
        browser.quick_queue.append(SensorTimeoutError("quick snapshot timed out after 15s"))
        browser.full_queue.append(FullSnapshot(
            url="https://hh.ru",
            title="Jobs",
            inputs=[InputField(type="search", placeholder="Профессия")],
        ))
        human = _Human("yes")
        replies = [
            _reply(action="fill", text="Профессия", value="Python developer", reasoning="search"),
            _reply(action="press_key", key="Enter", reasoning="run the search"),
            _reply(action="click", text="Apply to all", reasoning="fastest way"),
            _reply(action="click", text="Откликнуться", reasoning="submit application to the first vacancy"),
            _assessment(True, "Sends your resume to the employer", "Send the application?"),
            _reply(action="complete", is_complete=True, summary="Applied to 1 vacancy"),
        ]
        orchestrator, _ = _wire(browser, replies, human)

        result = await orchestrator.execute("Найди вакансии Python и откликнись на одну")

        assert result.status == TaskStatus.COMPLETED
        assert browser.calls_to("fill_by_placeholder") == [
            ("fill_by_placeholder", "Профессия", "Python developer")
        ]
        assert browser.calls_to("press_key") == [("press_key", "Enter")]
        clicks = [c[1] for c in browser.calls_to("click_by_text")]
        assert clicks == ["Откликнуться"]
        assert any(e.startswith("ERROR at 'click'") and "apply to all" in e for e in result.history)
        assert len(human.requests) == 1


# ── Flaky model ───────────────────────────────────────────────────────────────

class TestFlakyModel:
    @pytest.mark.asyncio
    async def test_recovers_from_bad_replies(self):
        browser = FakeBrowser()
        human = _Human()
        replies = [
            LLMResponse(content="Let me think... {\"action\": \"navigate\", \"url\": \"news.test\",}"),
            LLMConnectionError("connection reset"),
            LLMResponse(content="I am not sure."),
            _reply(action="complete", is_complete=True, summary="Opened the news"),
        ]
        orchestrator, _ = _wire(browser, replies, human)
        result = await orchestrator.execute("open news.test")

        assert result.status == TaskStatus.COMPLETED
        assert browser.url == "https://news.test"
        assert any(e.startswith("ERROR at 'decide'") for e in result.history)
        assert human.requests == []
