"""
agent/retry.py — Error & Retry Manager

Two separate mechanisms:

  - RetryPolicy: backoff + circuit breaker for the control loop. The delay
    is linear and capped, min(error_count * base_delay, max_delay), and the
    breaker trips once error_count reaches max_errors.
  - retry_on_timeout(): a small local retry for snapshot timeouts. It has
    its own attempt counter and never touches the loop's error count.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from webpilot.exceptions import SensorTimeoutError
from webpilot.observability.logger import get_logger

log = get_logger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    base_delay: float = 2.0
    max_delay: float = 10.0
    max_errors: int = 5

    def delay(self, error_count: int) -> float:
        """Seconds to wait after the error_count-th consecutive failure."""
        return min(max(error_count, 0) * self.base_delay, self.max_delay)

    def tripped(self, error_count: int) -> bool:
        return error_count >= self.max_errors

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            base_delay=settings.retry.base_delay_seconds,
            max_delay=settings.retry.max_delay_seconds,
            max_errors=settings.agent.max_errors,
        )


# Checked in order; first substring hit wins
_ADAPTATIONS: list[tuple[str, str]] = [
    ("not found", "try an alternative selector or visible text"),
    ("timeout", "increase wait time before the next action"),
    ("visible", "wait for the page to finish loading"),
]
_DEFAULT_ADAPTATION = "retry with a delay"


def adaptation_note(error: BaseException | str) -> str:
    """Short hint for the oracle about how to react to an execution error."""
    text = str(error).lower()
    for needle, note in _ADAPTATIONS:
        if needle in text:
            return note
    return _DEFAULT_ADAPTATION


async def retry_on_timeout(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    pacing: float = 1.0,
    sleep: SleepFn = asyncio.sleep,
    label: str = "snapshot",
) -> T:
    """
    Await fn(), retrying on SensorTimeoutError up to `attempts` times.

    Waits attempt * pacing seconds between attempts. Any other exception,
    including SensorUnavailableError, propagates immediately.
    """
    last_error: SensorTimeoutError | None = None
    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except SensorTimeoutError as e:
            last_error = e
            log.warning(
                "retry.sensor_timeout",
                label=label,
                attempt=attempt,
                attempts=attempts,
                error=str(e),
            )
            if attempt < attempts:
                await sleep(attempt * pacing)
    raise last_error  # type: ignore[misc]
