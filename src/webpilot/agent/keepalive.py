"""
agent/keepalive.py — Browser Keep-Alive Prober

Long tasks can leave the browser idle while the oracle thinks. KeepAlive
touches the page (reads the current URL) every `interval` seconds so the
DevTools connection never goes stale.

A probe that takes longer than `timeout` is logged and skipped. The prober
stops by itself once the browser reports it is closed or the browser
becomes unavailable; stop() cancels it explicitly.

Usage:
    keepalive = KeepAlive(browser, interval=30, timeout=5)
    keepalive.start()
    ...
    await keepalive.stop()
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from webpilot.agent.utils import fire_and_forget
from webpilot.browser.base import BrowserEnvironment
from webpilot.exceptions import SensorError, SensorUnavailableError
from webpilot.observability.logger import get_logger

log = get_logger(__name__)


class KeepAlive:

    def __init__(
        self,
        browser: BrowserEnvironment,
        interval: float = 30.0,
        timeout: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._browser = browser
        self._interval = interval
        self._timeout = timeout
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self.probes = 0
        self.missed = 0

    @classmethod
    def from_settings(cls, browser: BrowserEnvironment, settings) -> "KeepAlive":
        return cls(
            browser,
            interval=settings.browser.keepalive_interval_seconds,
            timeout=settings.browser.keepalive_timeout_seconds,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._task = fire_and_forget(self._run(), label="browser.keepalive")
        log.debug("keepalive.started", interval=self._interval)
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        log.debug("keepalive.stopped", probes=self.probes, missed=self.missed)

    async def probe(self) -> bool:
        """One keep-alive touch. Returns False when the probe timed out or failed."""
        self.probes += 1
        try:
            await asyncio.wait_for(self._browser.current_url(), timeout=self._timeout)
            return True
        except asyncio.TimeoutError:
            self.missed += 1
            log.debug("keepalive.probe_timeout", timeout=self._timeout)
            return False
        except SensorUnavailableError:
            raise
        except SensorError as e:
            self.missed += 1
            log.debug("keepalive.probe_failed", error=str(e))
            return False

    async def _run(self) -> None:
        while not self._browser.is_closed:
            await self._sleep(self._interval)
            if self._browser.is_closed:
                break
            try:
                await self.probe()
            except SensorUnavailableError as e:
                log.info("keepalive.browser_gone", error=str(e))
                break
        log.debug("keepalive.exit", probes=self.probes)
