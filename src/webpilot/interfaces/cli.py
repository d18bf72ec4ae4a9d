"""
interfaces/cli.py — WebPilot CLI Interface

Interactive REPL: every line the user types is a browser task. Uses rich for
terminal rendering and aioconsole for async input, so the keep-alive prober
keeps running while the prompt waits.

Features:
  - help / помощь / справка, exit / quit / выход (these are never tasks)
  - Each task bounded by agent.task_timeout_seconds (15 minutes by default)
  - Current URL shown before and after every task
  - Inline confirmation panel for destructive actions
  - Screenshot after a failed task when browser.screenshot_dir is set
  - Browser health check after every task; the REPL stops if it is gone

Usage:
    webpilot
    webpilot --log-level DEBUG
"""

from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional

import aioconsole
from playwright.async_api import Error as PlaywrightError
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from webpilot.agent.keepalive import KeepAlive
from webpilot.agent.orchestrator import Orchestrator
from webpilot.agent.state import TaskResult, TaskStatus
from webpilot.brain import LLMClientFactory
from webpilot.brain.llm_client import BaseLLMClient, LLMError
from webpilot.brain.oracle import LLMDecisionOracle
from webpilot.browser.base import BrowserEnvironment
from webpilot.browser.playwright_browser import PlaywrightBrowser
from webpilot.config.settings import Settings
from webpilot.exceptions import ActionError, SensorError, SensorUnavailableError
from webpilot.observability.logger import get_logger
from webpilot.safety.gate import ConfirmationRequest, SafetyGate

log = get_logger(__name__)

# ── Constants ─────────────────────────────────────────────────────────────────

_BANNER = r"""
 __        __   _     ____  _ _       _
 \ \      / /__| |__ |  _ \(_) | ___ | |_
  \ \ /\ / / _ \ '_ \| |_) | | |/ _ \| __|
   \ V  V /  __/ |_) |  __/| | | (_) | |_
    \_/\_/ \___|_.__/|_|   |_|_|\___/ \__|
"""

_HELP_TEXT = """
## WebPilot

Type a task in plain words and the agent will carry it out in the browser.

| Input | Description |
|-------|-------------|
| any text | Run it as a task |
| `help` / `помощь` / `справка` | Show this help |
| `exit` / `quit` / `выход` / Ctrl+D | Quit |

**Examples:**
- `Find the weather in Berlin for tomorrow`
- `Проверь почту и удали спам`
- `Найди вакансии Python-разработчика на hh.ru`

Destructive steps (delete, pay, submit, ...) always ask for confirmation first.
Answer `yes` / `y` / `да` / `д` to allow, anything else cancels the step.
"""

_EXIT_WORDS = frozenset({"exit", "quit", "выход"})
_HELP_WORDS = frozenset({"help", "помощь", "справка"})

_STATUS_STYLES: dict[TaskStatus, tuple[str, str]] = {
    TaskStatus.COMPLETED: ("green", "✓ Task completed"),
    TaskStatus.NEEDS_INPUT: ("yellow", "? Input needed"),
    TaskStatus.FAILED: ("red", "✗ Task failed"),
    TaskStatus.CANCELLED: ("yellow", "⏹ Task cancelled"),
}


def classify_input(line: str) -> str:
    """Return "empty", "exit", "help" or "task" for one REPL line."""
    text = line.strip().lower()
    if not text:
        return "empty"
    if text in _EXIT_WORDS:
        return "exit"
    if text in _HELP_WORDS:
        return "help"
    return "task"


# ── CLI Runner ────────────────────────────────────────────────────────────────


class CLIInterface:
    """
    Interactive REPL for WebPilot.

    Wires together: Settings → LLM → Oracle → Browser → Safety → Orchestrator
    then runs a rich-powered async input loop.
    """

    def __init__(
        self,
        settings: Settings,
        console: Optional[Console] = None,
        input_fn: Callable[[str], Awaitable[str]] = aioconsole.ainput,
    ):
        self.settings = settings
        self.console = console or Console()
        self._input = input_fn
        self._llm_client: Optional[BaseLLMClient] = None
        self._browser: Optional[BrowserEnvironment] = None
        self._keepalive: Optional[KeepAlive] = None
        self._orchestrator: Optional[Orchestrator] = None
        self._tasks_run = 0

    # ── Startup ───────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Initialize all components then run the REPL loop."""
        await self._init_components()
        self._print_banner()
        try:
            await self._repl_loop()
        finally:
            await self._cleanup()

    async def _init_components(self) -> None:
        self.console.print("[dim]Initializing WebPilot...[/]")

        try:
            self._llm_client = LLMClientFactory.from_settings(self.settings)
        except (LLMError, ValueError) as e:
            self.console.print(f"[red]❌ Failed to create LLM client: {e}[/]")
            sys.exit(1)

        if not await self._llm_client.health_check():
            self.console.print(
                f"[yellow]⚠ LLM provider '{self.settings.default_llm_provider}' "
                f"did not answer the health check; tasks may fail.[/]"
            )

        browser = PlaywrightBrowser.from_settings(self.settings)
        try:
            with self.console.status("[dim]Launching browser...[/]"):
                await browser.start()
        except (PlaywrightError, OSError) as e:
            self.console.print(f"[red]❌ Failed to launch browser: {e}[/]")
            sys.exit(1)
        self._browser = browser

        try:
            await browser.navigate(self.settings.start_url)
        except ActionError as e:
            self.console.print(f"[yellow]⚠ Could not open {self.settings.start_url}: {e}[/]")

        self._keepalive = KeepAlive.from_settings(browser, self.settings)
        self._keepalive.start()

        oracle = LLMDecisionOracle.from_settings(self._llm_client, self.settings)
        gate = SafetyGate.from_settings(oracle, self.confirm, self.settings)
        self._orchestrator = Orchestrator.from_settings(browser, oracle, gate, self.settings)

        log.info(
            "cli.initialized",
            provider=self.settings.default_llm_provider,
            model=self.settings.default_llm_model,
            user_data_dir=str(self.settings.user_data_dir),
        )
        self.console.print("[dim]✓ Ready[/]\n")

    # ── Banner & Help ─────────────────────────────────────────────────────────

    def _print_banner(self) -> None:
        self.console.print(Text(_BANNER, style="bold cyan"), justify="center")
        s = self.settings
        self.console.print(
            Panel(
                f"[bold]v{s.agent.version}[/]  ·  "
                f"LLM: [cyan]{s.default_llm_provider}[/]/[cyan]{s.default_llm_model}[/]  ·  "
                f"Profile: [dim]{s.user_data_dir}[/]\n\n"
                f"Type a task or [bold]help[/]. [bold]exit[/] or Ctrl+D to quit.",
                border_style="cyan",
                padding=(0, 2),
            )
        )

    def _print_help(self) -> None:
        self.console.print(Markdown(_HELP_TEXT))

    # ── REPL Loop ─────────────────────────────────────────────────────────────

    async def _repl_loop(self) -> None:
        while True:
            try:
                line = await self._input("\nwebpilot> ")
            except (EOFError, KeyboardInterrupt):
                self.console.print("\n[dim]Goodbye.[/]")
                break

            kind = classify_input(line)
            if kind == "empty":
                continue
            if kind == "exit":
                self.console.print("[dim]Goodbye.[/]")
                break
            if kind == "help":
                self._print_help()
                continue

            await self.run_task(line.strip())
            if not await self._browser_alive():
                self.console.print("[red]Browser is no longer available. Exiting.[/]")
                break

    async def run_task(self, task: str) -> TaskResult:
        self._tasks_run += 1
        self.console.print(f"[dim]Current URL: {await self._current_url()}[/]")
        self.console.print(f"[bold cyan]▶ {task}[/]")

        result = await self._orchestrator.execute(
            task, timeout=self.settings.agent.task_timeout_seconds
        )
        self.render_result(result)

        if result.status == TaskStatus.FAILED:
            await self._save_failure_screenshot()
        self.console.print(f"[dim]Current URL: {await self._current_url()}[/]")
        return result

    # ── Confirmation ──────────────────────────────────────────────────────────

    async def confirm(self, request: ConfirmationRequest) -> str:
        """Confirm callback for the safety gate: show the panel, read one answer."""
        body = f"**Action:** {request.action}\n\n**What happens:** {request.description}"
        if request.target:
            body += f"\n\n**Element:** {request.target}"
        self.console.print()
        self.console.print(
            Panel(
                Markdown(body),
                title="[bold yellow]⚠ Destructive action[/]",
                border_style="yellow",
                padding=(0, 2),
            )
        )
        answer = await self._input(f"  {request.question} (yes/no): ")
        log.info("cli.confirmation_answer", action=request.action, answer=answer.strip()[:20])
        return answer

    # ── Rendering ─────────────────────────────────────────────────────────────

    def render_result(self, result: TaskResult) -> None:
        style, title = _STATUS_STYLES[result.status]

        if result.status == TaskStatus.COMPLETED:
            body = result.summary or "Done."
        elif result.status == TaskStatus.NEEDS_INPUT:
            body = result.input_prompt or "The agent needs more information to continue."
        else:
            reason = result.reason.value if result.reason else "unknown"
            body = f"**Reason:** `{reason}`"
            if result.error:
                body += f"\n\n{result.error}"

        self.console.print(
            Panel(
                Markdown(body),
                title=f"[bold {style}]{title}[/]",
                subtitle=f"[dim]{result.iterations} steps · {result.duration_ms / 1000:.1f}s[/]",
                border_style=style,
                padding=(0, 2),
            )
        )

        if result.status != TaskStatus.COMPLETED and result.history:
            table = Table(title="Last steps", show_header=False, box=None, padding=(0, 1))
            for entry in result.history[-5:]:
                table.add_row("•", entry)
            self.console.print(table)

    # ── Browser helpers ───────────────────────────────────────────────────────

    async def _current_url(self) -> str:
        try:
            return await self._browser.current_url()
        except SensorError as e:
            log.debug("cli.current_url_failed", error=str(e))
            return "(unknown)"

    async def _browser_alive(self) -> bool:
        if self._browser is None or self._browser.is_closed:
            return False
        try:
            await self._browser.current_url()
        except SensorUnavailableError:
            return False
        except SensorError:
            return True
        return True

    async def _save_failure_screenshot(self) -> Optional[Path]:
        shot_dir = self.settings.browser.screenshot_dir
        if not shot_dir or self._browser is None or self._browser.is_closed:
            return None
        path = Path(shot_dir) / f"failure_{time.strftime('%Y%m%d_%H%M%S')}_{self._tasks_run}.png"
        try:
            saved = await self._browser.screenshot(path)
        except (PlaywrightError, SensorError, OSError) as e:
            log.warning("cli.screenshot_failed", error=str(e))
            return None
        self.console.print(f"[dim]Screenshot saved to {saved}[/]")
        return saved

    # ── Cleanup ───────────────────────────────────────────────────────────────

    async def _cleanup(self) -> None:
        if self._keepalive is not None:
            await self._keepalive.stop()
        if self._browser is not None and not self._browser.is_closed:
            if self.settings.keep_open:
                try:
                    await self._input("Browser kept open. Press Enter to close it... ")
                except (EOFError, KeyboardInterrupt):
                    pass
            await self._browser.close()
        log.info("cli.shutdown", tasks_run=self._tasks_run)


# ── Public entry point ────────────────────────────────────────────────────────


async def run_cli(settings: Settings, log) -> None:
    """Entry point called from main.py."""
    cli = CLIInterface(settings=settings)

    log.info("cli.starting")
    try:
        await cli.start()
    except KeyboardInterrupt:
        log.info("cli.interrupted")
