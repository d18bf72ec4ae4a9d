"""
agent/history.py — Action History

Append-only record of what happened in each iteration of one task
execution. The context builder reads only the newest entries; loop
detection scans a short tail of the full record.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

LOOP_DETECTED_MARKER = "LOOP DETECTED: repeated finish signal ignored, continuing the task"
SKIPPED_FINISH_MARKER = "SKIPPED: finish action not executed after loop detection"

DEFAULT_COMPLETION_MARKERS: tuple[str, ...] = ("complete", "задача выполнена")


def cancellation_entry(action: str) -> str:
    return f"CANCELLED destructive action: {action}"


def error_entry(action: str, error: str, strategy: str) -> str:
    return f"ERROR at '{action}': {error}. Strategy: {strategy}"


def sensing_entry(error: str) -> str:
    return f"SENSING FAILED: {error}. Page state unknown, retrying"


class ActionHistory:
    """Ordered, append-only list of short iteration summaries."""

    def __init__(self, completion_markers: Iterable[str] = DEFAULT_COMPLETION_MARKERS):
        self._entries: list[str] = []
        self._markers = tuple(m.lower() for m in completion_markers)

    def append(self, entry: str) -> None:
        self._entries.append(entry)

    def recent(self, n: int) -> list[str]:
        """The last n entries, oldest first."""
        if n <= 0:
            return []
        return self._entries[-n:]

    @property
    def entries(self) -> list[str]:
        return list(self._entries)

    def is_completion_signal(self, entry: str) -> bool:
        lowered = entry.lower()
        return any(marker in lowered for marker in self._markers)

    def count_completion_signals(self, window: int) -> int:
        return sum(1 for e in self.recent(window) if self.is_completion_signal(e))

    def completion_loop_detected(self, window: int, threshold: int) -> bool:
        """True when `threshold` or more of the last `window` entries signal completion."""
        return self.count_completion_signals(window) >= threshold

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)
