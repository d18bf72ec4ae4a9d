"""
tests/unit/test_cli.py — CLI Interface Tests

Covers:
  - classify_input() for exit / help / empty / task lines (English and Russian)
  - REPL loop dispatch, EOF handling, stop when the browser dies
  - Result rendering per status
  - Confirmation panel and answer passthrough
  - Failure screenshot and keep-open cleanup
"""

from __future__ import annotations

import io
from unittest.mock import AsyncMock

import pytest
from rich.console import Console

from tests.fakes import FakeBrowser
from webpilot.agent.state import FailureReason, TaskResult, TaskStatus
from webpilot.config.settings import Settings
from webpilot.interfaces.cli import CLIInterface, classify_input
from webpilot.safety.gate import ConfirmationRequest


class _Inputs:
    """Scripted replacement for aioconsole.ainput."""

    def __init__(self, *lines):
        self.lines = list(lines)
        self.prompts: list[str] = []

    async def __call__(self, prompt: str = "") -> str:
        self.prompts.append(prompt)
        if not self.lines:
            raise EOFError
        line = self.lines.pop(0)
        if isinstance(line, BaseException):
            raise line
        return line


def _cli(*lines, settings: Settings | None = None):
    buffer = io.StringIO()
    console = Console(file=buffer, width=120, force_terminal=False, color_system=None)
    inputs = _Inputs(*lines)
    cli = CLIInterface(settings or Settings(), console=console, input_fn=inputs)
    cli._browser = FakeBrowser()
    return cli, buffer, inputs


def _result(status: TaskStatus, **kwargs) -> TaskResult:
    kwargs.setdefault("task", "t")
    return TaskResult(status=status, iterations=3, duration_ms=1500, **kwargs)


# ── classify_input ────────────────────────────────────────────────────────────

class TestClassifyInput:
    @pytest.mark.parametrize("line,kind", [
        ("", "empty"),
        ("   ", "empty"),
        ("exit", "exit"),
        ("QUIT", "exit"),
        ("выход", "exit"),
        ("help", "help"),
        ("помощь", "help"),
        (" справка ", "help"),
        ("exit the modal dialog", "task"),
        ("Проверь почту", "task"),
    ])
    def test_kinds(self, line, kind):
        assert classify_input(line) == kind


# ── REPL ──────────────────────────────────────────────────────────────────────

class TestReplLoop:
    @pytest.mark.asyncio
    async def test_dispatch(self):
        cli, buffer, _ = _cli("", "help", "  find flights  ", "exit")
        cli.run_task = AsyncMock()
        await cli._repl_loop()
        cli.run_task.assert_awaited_once_with("find flights")
        assert "WebPilot" in buffer.getvalue()

    @pytest.mark.asyncio
    async def test_eof_ends_loop(self):
        cli, buffer, _ = _cli()
        await cli._repl_loop()
        assert "Goodbye" in buffer.getvalue()

    @pytest.mark.asyncio
    async def test_stops_when_browser_dies(self):
        cli, buffer, inputs = _cli("task one", "task two")
        browser = cli._browser

        async def run_task(task):
            browser.closed = True

        cli.run_task = run_task
        await cli._repl_loop()
        assert "no longer available" in buffer.getvalue()
        assert inputs.lines == ["task two"]


# ── Tasks ─────────────────────────────────────────────────────────────────────

class TestRunTask:
    @pytest.mark.asyncio
    async def test_runs_with_deadline_and_shows_urls(self):
        cli, buffer, _ = _cli(settings=Settings(agent={"task_timeout_seconds": 60}))
        cli._orchestrator = AsyncMock()
        cli._orchestrator.execute.return_value = _result(TaskStatus.COMPLETED, summary="Found it")

        result = await cli.run_task("find it")

        cli._orchestrator.execute.assert_awaited_once_with("find it", timeout=60)
        assert result.status == TaskStatus.COMPLETED
        out = buffer.getvalue()
        assert out.count("Current URL: https://start.test") == 2
        assert "Found it" in out

    @pytest.mark.asyncio
    async def test_failure_screenshot(self, tmp_path):
        settings = Settings(browser={"screenshot_dir": str(tmp_path)})
        cli, buffer, _ = _cli(settings=settings)
        cli._orchestrator = AsyncMock()
        cli._orchestrator.execute.return_value = _result(
            TaskStatus.FAILED, reason=FailureReason.CIRCUIT_BREAKER
        )

        await cli.run_task("break things")

        shots = cli._browser.calls_to("screenshot")
        assert len(shots) == 1
        assert shots[0][1].parent == tmp_path
        assert "Screenshot saved" in buffer.getvalue()

    @pytest.mark.asyncio
    async def test_no_screenshot_on_success(self, tmp_path):
        cli, _, _ = _cli(settings=Settings(browser={"screenshot_dir": str(tmp_path)}))
        cli._orchestrator = AsyncMock()
        cli._orchestrator.execute.return_value = _result(TaskStatus.COMPLETED)
        await cli.run_task("fine")
        assert cli._browser.calls_to("screenshot") == []

    @pytest.mark.asyncio
    async def test_unknown_url_when_browser_gone(self):
        cli, _, _ = _cli()
        cli._browser.closed = True
        assert await cli._current_url() == "(unknown)"


# ── Rendering ─────────────────────────────────────────────────────────────────

class TestRenderResult:
    def test_completed(self):
        cli, buffer, _ = _cli()
        cli.render_result(_result(TaskStatus.COMPLETED, summary="Booked a table", history=["click: x"]))
        out = buffer.getvalue()
        assert "Task completed" in out
        assert "Booked a table" in out
        assert "3 steps" in out
        assert "Last steps" not in out

    def test_needs_input(self):
        cli, buffer, _ = _cli()
        cli.render_result(_result(TaskStatus.NEEDS_INPUT, input_prompt="Which city?"))
        assert "Which city?" in buffer.getvalue()

    def test_failed_shows_reason_and_history(self):
        cli, buffer, _ = _cli()
        cli.render_result(_result(
            TaskStatus.FAILED,
            reason=FailureReason.ITERATION_LIMIT,
            error="Task not finished after 50 iterations",
            history=[f"step {i}" for i in range(8)],
        ))
        out = buffer.getvalue()
        assert "iteration_limit" in out
        assert "Last steps" in out
        assert "step 7" in out
        assert "step 2" not in out

    def test_cancelled(self):
        cli, buffer, _ = _cli()
        cli.render_result(_result(TaskStatus.CANCELLED, reason=FailureReason.DEADLINE_EXCEEDED))
        assert "deadline_exceeded" in buffer.getvalue()


# ── Confirmation ──────────────────────────────────────────────────────────────

class TestConfirm:
    @pytest.mark.asyncio
    async def test_panel_and_answer(self):
        cli, buffer, inputs = _cli("да")
        answer = await cli.confirm(ConfirmationRequest(
            action="click",
            description="Deletes the account",
            question="Delete the account?",
            target="удалить аккаунт",
        ))
        assert answer == "да"
        out = buffer.getvalue()
        assert "Destructive action" in out
        assert "Deletes the account" in out
        assert "удалить аккаунт" in out
        assert "Delete the account?" in inputs.prompts[0]


# ── Cleanup ───────────────────────────────────────────────────────────────────

class TestCleanup:
    @pytest.mark.asyncio
    async def test_closes_browser(self):
        cli, _, inputs = _cli()
        browser = cli._browser
        await cli._cleanup()
        assert browser.closed
        assert inputs.prompts == []

    @pytest.mark.asyncio
    async def test_keep_open_waits_for_enter(self):
        cli, _, inputs = _cli("", settings=Settings(KEEP_BROWSER_OPEN=True))
        browser = cli._browser
        await cli._cleanup()
        assert "Press Enter" in inputs.prompts[0]
        assert browser.closed

    @pytest.mark.asyncio
    async def test_stops_keepalive(self):
        cli, _, _ = _cli()
        cli._keepalive = AsyncMock()
        await cli._cleanup()
        cli._keepalive.stop.assert_awaited_once()
