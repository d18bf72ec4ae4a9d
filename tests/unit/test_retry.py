"""
tests/unit/test_retry.py — Backoff, Circuit Breaker & Sensor Retry Tests
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from tests.fakes import SleepRecorder
from webpilot.agent.retry import RetryPolicy, adaptation_note, retry_on_timeout
from webpilot.exceptions import (
    ActionExecutionError,
    SensorError,
    SensorTimeoutError,
    SensorUnavailableError,
)


# ── RetryPolicy ───────────────────────────────────────────────────────────────

class TestRetryPolicy:
    @pytest.mark.parametrize("count,expected", [(1, 2.0), (2, 4.0), (3, 6.0), (4, 8.0), (5, 10.0), (9, 10.0)])
    def test_linear_capped_delay(self, count, expected):
        assert RetryPolicy().delay(count) == expected

    def test_zero_errors_no_delay(self):
        assert RetryPolicy().delay(0) == 0

    def test_breaker_trips_at_max_errors(self):
        policy = RetryPolicy(max_errors=5)
        assert not policy.tripped(4)
        assert policy.tripped(5)

    def test_from_settings(self):
        settings = SimpleNamespace(
            retry=SimpleNamespace(base_delay_seconds=1.5, max_delay_seconds=4.0),
            agent=SimpleNamespace(max_errors=3),
        )
        policy = RetryPolicy.from_settings(settings)
        assert policy == RetryPolicy(base_delay=1.5, max_delay=4.0, max_errors=3)


# ── adaptation_note ───────────────────────────────────────────────────────────

class TestAdaptationNote:
    def test_not_found(self):
        note = adaptation_note(ActionExecutionError("Element 'Login' not found"))
        assert "alternative selector" in note

    def test_timeout(self):
        assert "wait time" in adaptation_note("Timeout 20000ms exceeded")

    def test_visible(self):
        assert "finish loading" in adaptation_note("element is not Visible")

    def test_default(self):
        assert adaptation_note("something odd") == "retry with a delay"


# ── retry_on_timeout ──────────────────────────────────────────────────────────

class _Flaky:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class TestRetryOnTimeout:
    @pytest.mark.asyncio
    async def test_succeeds_after_timeouts(self):
        sleep = SleepRecorder()
        fn = _Flaky(SensorTimeoutError("t1"), SensorTimeoutError("t2"), "snapshot")
        assert await retry_on_timeout(fn, attempts=3, pacing=1.0, sleep=sleep) == "snapshot"
        assert fn.calls == 3
        assert sleep.calls == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhausted_raises_last_timeout(self):
        sleep = SleepRecorder()
        fn = _Flaky(SensorTimeoutError("t1"), SensorTimeoutError("t2"), SensorTimeoutError("t3"))
        with pytest.raises(SensorTimeoutError, match="t3"):
            await retry_on_timeout(fn, attempts=3, pacing=0.5, sleep=sleep)
        assert sleep.calls == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_unavailable_not_retried(self):
        fn = _Flaky(SensorUnavailableError("gone"), "never")
        with pytest.raises(SensorUnavailableError):
            await retry_on_timeout(fn, sleep=SleepRecorder())
        assert fn.calls == 1

    @pytest.mark.asyncio
    async def test_other_sensor_error_not_retried(self):
        fn = _Flaky(SensorError("bad script"), "never")
        with pytest.raises(SensorError):
            await retry_on_timeout(fn, sleep=SleepRecorder())
        assert fn.calls == 1
