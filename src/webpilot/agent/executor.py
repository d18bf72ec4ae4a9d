"""
agent/executor.py — Action Executor

Turns one Decision into one browser operation. Payload fields are checked by
build_action() before anything touches the browser, so a missing field fails
immediately with FieldValidationError naming it and is never retried here.

Dispatch is a table from action payload type to handler; every ActionKind
has exactly one handler.

Usage:
    executor = ActionExecutor(browser, wait_for_timeout=10, wait_pause=2)
    await executor.execute(decision)
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from webpilot.agent.decision import (
    Action,
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
from webpilot.browser.base import BrowserEnvironment
from webpilot.browser.types import TabInfo
from webpilot.exceptions import ActionExecutionError
from webpilot.observability.logger import get_logger

log = get_logger(__name__)


def normalise_url(url: str) -> str:
    """Add https:// to a bare domain ("example.com"); leave anything else alone."""
    url = url.strip()
    if url.startswith(("http://", "https://")):
        return url
    if "." in url and " " not in url:
        return "https://" + url
    return url


class ActionExecutor:

    def __init__(
        self,
        browser: BrowserEnvironment,
        wait_for_timeout: float = 10.0,
        wait_pause: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._browser = browser
        self._wait_for_timeout = wait_for_timeout
        self._wait_pause = wait_pause
        self._sleep = sleep
        self._handlers: dict[type, Callable[[Action], Awaitable[None]]] = {
            NavigateAction: self._navigate,
            ClickAction: self._click,
            FillAction: self._fill,
            PressKeyAction: self._press_key,
            SwitchTabAction: self._switch_tab,
            CloseTabAction: self._close_tab,
            WaitAction: self._wait,
            ExtractAction: self._noop,
            CompleteAction: self._noop,
        }

    @classmethod
    def from_settings(cls, browser: BrowserEnvironment, settings) -> "ActionExecutor":
        return cls(
            browser,
            wait_for_timeout=settings.browser.wait_for_timeout_seconds,
            wait_pause=settings.browser.wait_pause_seconds,
        )

    async def execute(self, decision: Decision) -> None:
        """
        Validate and run one decision.

        Raises:
            FieldValidationError:    a required field is missing or out of range.
            UnrecognizedActionError: unknown action kind.
            ActionExecutionError:    the browser operation failed.
            SensorUnavailableError:  the browser went away mid-action.
        """
        action = build_action(decision)
        log.debug("executor.action_start", action=decision.action, payload=repr(action))
        await self._handlers[type(action)](action)
        log.info("executor.action_done", action=decision.action)

    # ── Handlers ──────────────────────────────────────────────────────────────

    async def _navigate(self, a: NavigateAction) -> None:
        await self._browser.navigate(normalise_url(a.url))

    async def _click(self, a: ClickAction) -> None:
        if a.text:
            await self._browser.click_by_text(a.text)
        else:
            await self._browser.click_by_selector(a.selector)

    async def _fill(self, a: FillAction) -> None:
        if a.selector:
            await self._browser.fill_by_selector(a.selector, a.value)
        else:
            await self._browser.fill_by_placeholder(a.text, a.value)

    async def _press_key(self, a: PressKeyAction) -> None:
        await self._browser.press_key(a.key)

    async def _tab(self, action: str, tab_index: int) -> tuple[list[TabInfo], TabInfo]:
        tabs = await self._browser.list_tabs()
        if tab_index > len(tabs):
            raise ActionExecutionError(
                f"Invalid tab index {tab_index} ({len(tabs)} tabs open)",
                action=action,
                target=str(tab_index),
            )
        return tabs, tabs[tab_index - 1]

    async def _switch_tab(self, a: SwitchTabAction) -> None:
        _, target = await self._tab("switch_tab", a.tab_index)
        log.info("executor.switch_tab", tab_index=a.tab_index, title=target.title)
        await self._browser.switch_to_tab(target.id)

    async def _close_tab(self, a: CloseTabAction) -> None:
        tabs, target = await self._tab("close_tab", a.tab_index)
        if len(tabs) == 1:
            raise ActionExecutionError(
                "Cannot close the only open tab", action="close_tab", target=str(a.tab_index)
            )
        if target.is_active:
            fallback = tabs[1] if a.tab_index == 1 else tabs[0]
            await self._browser.switch_to_tab(fallback.id)
        log.info("executor.close_tab", tab_index=a.tab_index, title=target.title)
        await self._browser.close_tab(target.id)

    async def _wait(self, a: WaitAction) -> None:
        if a.wait_for:
            await self._browser.wait_for_selector(a.wait_for, self._wait_for_timeout)
        else:
            await self._sleep(self._wait_pause)

    async def _noop(self, a: Action) -> None:
        return None
