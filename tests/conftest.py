"""
tests/conftest.py — Fixtures shared by unit and integration tests
"""

from __future__ import annotations

from typing import Optional

import pytest

from tests.fakes import FakeBrowser, SleepRecorder, make_gate
from webpilot.agent.orchestrator import Orchestrator
from webpilot.safety.gate import SafetyGate


@pytest.fixture
def browser() -> FakeBrowser:
    return FakeBrowser()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_orchestrator(browser, sleeper):
    """Factory: make_orchestrator(oracle, confirm=None, **orchestrator_kwargs)."""

    def _make(oracle, confirm=None, gate: Optional[SafetyGate] = None, **kwargs) -> Orchestrator:
        return Orchestrator(
            browser=browser,
            oracle=oracle,
            gate=gate or make_gate(oracle, confirm),
            sleep=sleeper,
            **kwargs,
        )

    return _make
