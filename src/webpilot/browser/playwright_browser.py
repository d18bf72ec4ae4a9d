"""
browser/playwright_browser.py — Playwright Browser Environment

Chromium driven through Playwright's async API with a persistent profile
(user_data_dir), so logins and cookies survive restarts.

Sensing runs in-page scripts that collect visible links, buttons, inputs,
headings, lists and tables. Actions use Playwright locators: text clicks
try button and link roles before plain text, fills try placeholder, label
and textbox role. Every failure is translated into the WebPilot exception
hierarchy:

    closed page / context       → SensorUnavailableError
    snapshot timeout            → SensorTimeoutError
    action timeout / not found  → ActionExecutionError (names the target)

Usage:
    browser = await PlaywrightBrowser.from_settings(settings).start()
    await browser.navigate("https://example.com")
    snap = await browser.quick_snapshot()
    await browser.close()
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from playwright.async_api import (
    BrowserContext,
    Error as PlaywrightError,
    Locator,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from webpilot.browser.base import BrowserEnvironment
from webpilot.browser.types import FullSnapshot, QuickSnapshot, TabInfo
from webpilot.exceptions import (
    ActionExecutionError,
    SensorError,
    SensorTimeoutError,
    SensorUnavailableError,
)
from webpilot.observability.logger import get_logger

log = get_logger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# In-page scripts
# ─────────────────────────────────────────────────────────────────────────────

_HELPERS_JS = """
    const isVisible = (el) => {
        if (!el) return false;
        const style = window.getComputedStyle(el);
        return style.display !== 'none' && style.visibility !== 'hidden' &&
               style.opacity !== '0' && el.offsetWidth > 0 && el.offsetHeight > 0;
    };
    const textOf = (el) => (el.innerText || el.textContent || '').trim();
    const buttonText = (b) => {
        let text = (b.innerText || b.textContent || b.value || '').trim();
        if (!text) text = (b.getAttribute('aria-label') || b.getAttribute('title') || '').trim();
        if (!text) {
            const cls = (typeof b.className === 'string' ? b.className : '').toLowerCase();
            const id = (b.id || '').toLowerCase();
            if (cls.includes('add') || cls.includes('cart') || id.includes('add') || id.includes('cart')) {
                text = '+';
            }
        }
        return text;
    };
    const BUTTON_SELECTOR = 'button, [role="button"], input[type="submit"], input[type="button"], ' +
                            '[class*="add"], [class*="cart"]';
"""

_QUICK_SNAPSHOT_JS = """
(limits) => {
""" + _HELPERS_JS + """
    const links = Array.from(document.querySelectorAll('a')).slice(0, limits.links)
        .filter(a => isVisible(a) && textOf(a) && a.href)
        .map(a => ({ text: textOf(a), href: a.href }));
    const buttons = Array.from(document.querySelectorAll(BUTTON_SELECTOR)).slice(0, limits.buttons)
        .filter(b => isVisible(b) && !b.disabled)
        .map(buttonText)
        .filter(t => t);
    return { url: window.location.href, title: document.title, links, buttons };
}
"""

_FULL_SNAPSHOT_JS = """
(limits) => {
""" + _HELPERS_JS + """
    const body = document.body ? (document.body.innerText || '') : '';
    const text = body.length > limits.text ? body.substring(0, limits.text) + '...' : body;

    const links = Array.from(document.querySelectorAll('a')).slice(0, limits.links)
        .filter(a => isVisible(a) && textOf(a) && a.href)
        .map(a => ({ text: textOf(a), href: a.href }));

    const buttons = Array.from(document.querySelectorAll(BUTTON_SELECTOR)).slice(0, limits.buttons)
        .filter(b => isVisible(b) && !b.disabled && !b.hasAttribute('disabled'))
        .map(b => ({ text: buttonText(b), type: b.tagName.toLowerCase(), role: b.getAttribute('role') || '' }))
        .filter(b => b.text);

    const inputs = Array.from(document.querySelectorAll('input, textarea, select'))
        .filter(i => isVisible(i) && (i.type || '').toLowerCase() !== 'hidden')
        .slice(0, limits.inputs)
        .map(i => ({
            type: i.type || (i.tagName.toLowerCase() === 'textarea' ? 'textarea' : 'text'),
            placeholder: i.placeholder || '',
            name: i.name || '',
            id: i.id || '',
            label: (i.labels && i.labels.length > 0) ? textOf(i.labels[0]) : (i.getAttribute('aria-label') || ''),
        }));

    const headings = Array.from(document.querySelectorAll('h1, h2, h3, h4')).slice(0, limits.headings)
        .map(h => ({ level: h.tagName, text: textOf(h) }))
        .filter(h => h.text);

    const lists = Array.from(document.querySelectorAll('ul, ol')).slice(0, limits.lists)
        .map(l => Array.from(l.querySelectorAll('li')).slice(0, limits.items).map(textOf).filter(t => t))
        .filter(items => items.length > 0);

    const tables = Array.from(document.querySelectorAll('table')).slice(0, limits.tables)
        .map(t => Array.from(t.querySelectorAll('tr')).slice(0, limits.rows)
            .map(tr => Array.from(tr.querySelectorAll('td, th')).map(textOf).filter(c => c))
            .filter(row => row.length > 0))
        .filter(rows => rows.length > 0);

    return { url: window.location.href, title: document.title, text, links, buttons,
             inputs, headings, lists, tables };
}
"""

_SCROLL_JS = "() => window.scrollTo(0, (document.body ? document.body.scrollHeight : 0) / 2)"

_QUICK_LIMITS = {"links": 100, "buttons": 150}
_FULL_LIMITS = {
    "text": 5000, "links": 200, "buttons": 150, "inputs": 25, "headings": 25,
    "lists": 20, "items": 50, "tables": 10, "rows": 50,
}

# Oracle-friendly key names → Playwright key names
_KEY_ALIASES: dict[str, str] = {
    "enter": "Enter", "return": "Enter", "tab": "Tab", "escape": "Escape",
    "esc": "Escape", "backspace": "Backspace", "delete": "Delete",
    "space": "Space", "arrowdown": "ArrowDown", "arrowup": "ArrowUp",
    "arrowleft": "ArrowLeft", "arrowright": "ArrowRight", "down": "ArrowDown",
    "up": "ArrowUp", "left": "ArrowLeft", "right": "ArrowRight",
    "pagedown": "PageDown", "pageup": "PageUp", "home": "Home", "end": "End",
}

_CLOSED_MARKERS = ("has been closed", "target closed", "browser has been closed", "context closed")


def _is_closed_error(e: Exception) -> bool:
    msg = str(e).lower()
    return any(m in msg for m in _CLOSED_MARKERS)


def normalise_key(key: str) -> str:
    return _KEY_ALIASES.get(key.strip().lower().replace(" ", ""), key.strip())


# ─────────────────────────────────────────────────────────────────────────────
# PlaywrightBrowser
# ─────────────────────────────────────────────────────────────────────────────


class PlaywrightBrowser(BrowserEnvironment):

    def __init__(
        self,
        user_data_dir: str | Path,
        headless: bool = False,
        viewport: tuple[int, int] = (1920, 1080),
        quick_timeout: float = 15.0,
        full_timeout: float = 45.0,
        action_timeout: float = 20.0,
        settle_delay: float = 1.0,
    ):
        self._user_data_dir = Path(user_data_dir).expanduser()
        self._headless = headless
        self._viewport = viewport
        self._quick_timeout = quick_timeout
        self._full_timeout = full_timeout
        self._action_timeout_ms = action_timeout * 1000
        self._settle_delay = settle_delay

        self._playwright: Optional[Playwright] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._closed = False

    @classmethod
    def from_settings(cls, settings) -> "PlaywrightBrowser":
        b = settings.browser
        return cls(
            user_data_dir=settings.user_data_dir,
            headless=b.headless,
            viewport=(b.viewport_width, b.viewport_height),
            quick_timeout=b.quick_snapshot_timeout_seconds,
            full_timeout=b.full_snapshot_timeout_seconds,
            action_timeout=b.action_timeout_seconds,
        )

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def start(self) -> "PlaywrightBrowser":
        self._user_data_dir.mkdir(parents=True, exist_ok=True)
        self._playwright = await async_playwright().start()
        try:
            self._context = await self._playwright.chromium.launch_persistent_context(
                user_data_dir=str(self._user_data_dir),
                headless=self._headless,
                viewport={"width": self._viewport[0], "height": self._viewport[1]},
                args=[
                    "--no-first-run",
                    "--no-default-browser-check",
                    "--disable-infobars",
                    "--disable-popup-blocking",
                ],
            )
        except PlaywrightError:
            await self._playwright.stop()
            self._playwright = None
            raise

        self._context.on("page", self._on_new_page)
        self._context.on("close", self._on_context_closed)
        self._page = (
            self._context.pages[0] if self._context.pages else await self._context.new_page()
        )
        log.info(
            "browser.started",
            user_data_dir=str(self._user_data_dir),
            headless=self._headless,
        )
        return self

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._context is not None:
            try:
                await self._context.close()
            except PlaywrightError as e:
                log.debug("browser.close_failed", error=str(e))
        if self._playwright is not None:
            await self._playwright.stop()
        log.info("browser.closed")

    @property
    def is_closed(self) -> bool:
        return self._closed or self._context is None

    def _on_new_page(self, page: Page) -> None:
        log.info("browser.tab_opened", url=page.url)
        self._page = page

    def _on_context_closed(self, _context: BrowserContext) -> None:
        log.warning("browser.context_closed")
        self._closed = True

    def _active_page(self) -> Page:
        if self.is_closed:
            raise SensorUnavailableError("Browser is closed")
        if self._page is None or self._page.is_closed():
            open_pages = [p for p in self._context.pages if not p.is_closed()]
            if not open_pages:
                raise SensorUnavailableError("No open browser tabs")
            self._page = open_pages[-1]
        return self._page

    def _open_pages(self) -> list[Page]:
        if self.is_closed:
            raise SensorUnavailableError("Browser is closed")
        return [p for p in self._context.pages if not p.is_closed()]

    # ── Sensing ───────────────────────────────────────────────────────────────

    async def _sense(self, what: str, script: str, limits: dict, timeout: float) -> dict[str, Any]:
        page = self._active_page()
        try:
            await page.evaluate(_SCROLL_JS)
            return await asyncio.wait_for(page.evaluate(script, limits), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise SensorTimeoutError(f"{what} timed out after {timeout:.0f}s") from e
        except PlaywrightError as e:
            if _is_closed_error(e):
                raise SensorUnavailableError(f"{what} failed, browser is gone: {e}") from e
            if "execution context was destroyed" in str(e).lower():
                # page navigated mid-evaluation
                raise SensorTimeoutError(f"{what} interrupted by navigation") from e
            raise SensorError(f"{what} failed: {e}") from e

    async def quick_snapshot(self) -> QuickSnapshot:
        data = await self._sense("quick snapshot", _QUICK_SNAPSHOT_JS, _QUICK_LIMITS, self._quick_timeout)
        return QuickSnapshot.model_validate(data)

    async def full_snapshot(self) -> FullSnapshot:
        data = await self._sense("full snapshot", _FULL_SNAPSHOT_JS, _FULL_LIMITS, self._full_timeout)
        return FullSnapshot.model_validate(data)

    async def current_url(self) -> str:
        page = self._active_page()
        try:
            return await page.evaluate("() => window.location.href")
        except PlaywrightError as e:
            if _is_closed_error(e):
                raise SensorUnavailableError(f"Browser is gone: {e}") from e
            raise SensorError(f"Could not read current URL: {e}") from e

    # ── Actions ───────────────────────────────────────────────────────────────

    async def _act(self, action: str, target: str, op: Callable[[Page], Awaitable[None]]) -> None:
        page = self._active_page()
        try:
            await op(page)
        except PlaywrightTimeoutError as e:
            raise ActionExecutionError(
                f"{action}: timeout on '{target}'", action=action, target=target
            ) from e
        except PlaywrightError as e:
            if _is_closed_error(e):
                raise SensorUnavailableError(f"Browser is gone during {action}: {e}") from e
            raise ActionExecutionError(
                f"{action} failed on '{target}': {e}", action=action, target=target
            ) from e

    async def _first_visible(self, candidates: list[Locator], max_per_candidate: int = 5) -> Optional[Locator]:
        for locator in candidates:
            count = min(await locator.count(), max_per_candidate)
            for i in range(count):
                nth = locator.nth(i)
                if await nth.is_visible():
                    return nth
        return None

    async def navigate(self, url: str) -> None:
        async def op(page: Page) -> None:
            await page.goto(url, wait_until="domcontentloaded", timeout=self._action_timeout_ms)
            await page.wait_for_timeout(self._settle_delay * 1000)

        await self._act("navigate", url, op)
        log.info("browser.navigated", url=url)

    async def click_by_text(self, text: str) -> None:
        async def op(page: Page) -> None:
            target = await self._first_visible([
                page.get_by_role("button", name=text),
                page.get_by_role("link", name=text),
                page.get_by_text(text),
            ])
            if target is None:
                raise ActionExecutionError(
                    f"Element with text '{text}' not found", action="click", target=text
                )
            await target.click(timeout=self._action_timeout_ms)
            await page.wait_for_timeout(self._settle_delay * 1000)

        await self._act("click", text, op)

    async def click_by_selector(self, selector: str) -> None:
        async def op(page: Page) -> None:
            target = page.locator(selector).first
            await target.wait_for(state="visible", timeout=self._action_timeout_ms)
            await target.click(timeout=self._action_timeout_ms)
            await page.wait_for_timeout(self._settle_delay * 1000)

        await self._act("click", selector, op)

    async def fill_by_placeholder(self, label: str, value: str) -> None:
        async def op(page: Page) -> None:
            target = await self._first_visible([
                page.get_by_placeholder(label),
                page.get_by_label(label),
                page.get_by_role("textbox", name=label),
                page.get_by_role("searchbox", name=label),
                page.get_by_role("combobox", name=label),
            ])
            if target is None:
                raise ActionExecutionError(
                    f"Input field '{label}' not found", action="fill", target=label
                )
            await target.fill(value, timeout=self._action_timeout_ms)

        await self._act("fill", label, op)

    async def fill_by_selector(self, selector: str, value: str) -> None:
        async def op(page: Page) -> None:
            target = page.locator(selector).first
            await target.wait_for(state="visible", timeout=self._action_timeout_ms)
            await target.fill(value, timeout=self._action_timeout_ms)

        await self._act("fill", selector, op)

    async def press_key(self, key: str) -> None:
        pw_key = normalise_key(key)

        async def op(page: Page) -> None:
            await page.keyboard.press(pw_key)
            await page.wait_for_timeout(self._settle_delay * 1000)

        await self._act("press_key", pw_key, op)

    async def wait_for_selector(self, selector: str, timeout: float) -> None:
        async def op(page: Page) -> None:
            await page.wait_for_selector(selector, state="visible", timeout=timeout * 1000)

        await self._act("wait", selector, op)

    # ── Tabs ──────────────────────────────────────────────────────────────────

    async def list_tabs(self) -> list[TabInfo]:
        active = self._active_page()
        tabs = []
        for i, page in enumerate(self._open_pages(), start=1):
            try:
                title = await page.title()
            except PlaywrightError:
                title = ""
            tabs.append(TabInfo(id=i, title=title, url=page.url, is_active=page is active))
        return tabs

    def _page_for(self, tab_id: int, action: str) -> Page:
        pages = self._open_pages()
        if not 1 <= tab_id <= len(pages):
            raise ActionExecutionError(
                f"Tab {tab_id} not found ({len(pages)} open)", action=action, target=str(tab_id)
            )
        return pages[tab_id - 1]

    async def switch_to_tab(self, tab_id: int) -> None:
        page = self._page_for(tab_id, "switch_tab")
        try:
            await page.bring_to_front()
        except PlaywrightError as e:
            raise ActionExecutionError(
                f"Could not switch to tab {tab_id}: {e}", action="switch_tab", target=str(tab_id)
            ) from e
        self._page = page
        log.info("browser.tab_switched", tab_id=tab_id, url=page.url)

    async def close_tab(self, tab_id: int) -> None:
        page = self._page_for(tab_id, "close_tab")
        try:
            await page.close()
        except PlaywrightError as e:
            raise ActionExecutionError(
                f"Could not close tab {tab_id}: {e}", action="close_tab", target=str(tab_id)
            ) from e
        if self._page is page:
            self._page = None
        log.info("browser.tab_closed", tab_id=tab_id)

    async def screenshot(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        page = self._active_page()
        await page.screenshot(path=str(path))
        return path
