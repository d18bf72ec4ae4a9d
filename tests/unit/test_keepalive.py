"""
tests/unit/test_keepalive.py — Browser Keep-Alive & Background Task Tests
"""

from __future__ import annotations

import asyncio

import pytest

from tests.fakes import FakeBrowser
from webpilot.agent.keepalive import KeepAlive
from webpilot.agent.utils import fire_and_forget, pending_background_tasks
from webpilot.exceptions import SensorError, SensorUnavailableError


class _Ticker:
    """Sleep stand-in that closes the browser after `ticks` intervals."""

    def __init__(self, browser: FakeBrowser, ticks: int):
        self.browser = browser
        self.ticks = ticks
        self.calls = 0

    async def __call__(self, seconds: float) -> None:
        self.calls += 1
        if self.calls > self.ticks:
            self.browser.closed = True
        await asyncio.sleep(0)


class _HangingBrowser(FakeBrowser):
    async def current_url(self) -> str:
        await asyncio.Event().wait()
        return ""


# ── probe ─────────────────────────────────────────────────────────────────────

class TestProbe:
    @pytest.mark.asyncio
    async def test_healthy(self):
        keepalive = KeepAlive(FakeBrowser())
        assert await keepalive.probe() is True
        assert (keepalive.probes, keepalive.missed) == (1, 0)

    @pytest.mark.asyncio
    async def test_slow_probe_is_missed(self):
        keepalive = KeepAlive(_HangingBrowser(), timeout=0.01)
        assert await keepalive.probe() is False
        assert keepalive.missed == 1

    @pytest.mark.asyncio
    async def test_sensor_error_is_missed(self):
        browser = FakeBrowser()
        browser.failures["current_url"] = SensorError("evaluate failed")
        keepalive = KeepAlive(browser)
        assert await keepalive.probe() is False
        assert keepalive.missed == 1

    @pytest.mark.asyncio
    async def test_unavailable_propagates(self):
        browser = FakeBrowser()
        browser.failures["current_url"] = SensorUnavailableError("gone")
        with pytest.raises(SensorUnavailableError):
            await KeepAlive(browser).probe()


# ── lifecycle ─────────────────────────────────────────────────────────────────

class TestLifecycle:
    @pytest.mark.asyncio
    async def test_probes_until_browser_closes(self):
        browser = FakeBrowser()
        ticker = _Ticker(browser, ticks=3)
        keepalive = KeepAlive(browser, interval=30, sleep=ticker)

        task = keepalive.start()
        await asyncio.wait_for(task, timeout=1)

        assert keepalive.probes == 3
        assert len(browser.calls_to("current_url")) == 3
        assert not keepalive.running

    @pytest.mark.asyncio
    async def test_exits_when_browser_unavailable(self):
        browser = FakeBrowser()
        browser.failures["current_url"] = SensorUnavailableError("page crashed")
        keepalive = KeepAlive(browser, sleep=_Ticker(browser, ticks=100))

        await asyncio.wait_for(keepalive.start(), timeout=1)
        assert keepalive.probes == 1

    @pytest.mark.asyncio
    async def test_stop_cancels(self):
        keepalive = KeepAlive(FakeBrowser(), interval=3600)
        keepalive.start()
        assert keepalive.running
        await keepalive.stop()
        assert not keepalive.running

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        keepalive = KeepAlive(FakeBrowser(), interval=3600)
        first = keepalive.start()
        assert keepalive.start() is first
        await keepalive.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        await KeepAlive(FakeBrowser()).stop()


# ── fire_and_forget ───────────────────────────────────────────────────────────

class TestFireAndForget:
    @pytest.mark.asyncio
    async def test_reference_released_when_done(self):
        async def work():
            return 42

        task = fire_and_forget(work(), label="test.work")
        before = pending_background_tasks()
        assert await task == 42
        await asyncio.sleep(0)
        assert pending_background_tasks() == before - 1

    @pytest.mark.asyncio
    async def test_exception_does_not_escape(self):
        async def broken():
            raise RuntimeError("boom")

        task = fire_and_forget(broken(), label="test.broken")
        await asyncio.wait({task})
        await asyncio.sleep(0)
        assert isinstance(task.exception(), RuntimeError)
