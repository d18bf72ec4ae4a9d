"""
browser/base.py — Browser Environment Interface

Everything the agent needs from a browser: two sensing calls at different
fidelity, a liveness read, and a small set of actions. Implementations
raise:

  - SensorTimeoutError      a snapshot timed out (transient)
  - SensorUnavailableError  the browser/page is gone (fatal for a task)
  - ActionExecutionError    an action failed; the message names the target

Only one control loop may drive a given environment at a time. The
keep-alive prober may call current_url() concurrently since it never mutates.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from webpilot.browser.types import FullSnapshot, QuickSnapshot, TabInfo


class BrowserEnvironment(ABC):

    # ── Sensing ───────────────────────────────────────────────────────────────

    @abstractmethod
    async def quick_snapshot(self) -> QuickSnapshot:
        ...

    @abstractmethod
    async def full_snapshot(self) -> FullSnapshot:
        ...

    @abstractmethod
    async def current_url(self) -> str:
        ...

    # ── Actions ───────────────────────────────────────────────────────────────

    @abstractmethod
    async def navigate(self, url: str) -> None:
        ...

    @abstractmethod
    async def click_by_text(self, text: str) -> None:
        ...

    @abstractmethod
    async def click_by_selector(self, selector: str) -> None:
        ...

    @abstractmethod
    async def fill_by_placeholder(self, label: str, value: str) -> None:
        ...

    @abstractmethod
    async def fill_by_selector(self, selector: str, value: str) -> None:
        ...

    @abstractmethod
    async def press_key(self, key: str) -> None:
        ...

    @abstractmethod
    async def wait_for_selector(self, selector: str, timeout: float) -> None:
        ...

    # ── Tabs ──────────────────────────────────────────────────────────────────

    @abstractmethod
    async def list_tabs(self) -> list[TabInfo]:
        ...

    @abstractmethod
    async def switch_to_tab(self, tab_id: int) -> None:
        ...

    @abstractmethod
    async def close_tab(self, tab_id: int) -> None:
        ...

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        ...

    @abstractmethod
    async def screenshot(self, path: Path) -> Path:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...
