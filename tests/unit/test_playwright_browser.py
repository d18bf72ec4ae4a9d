"""
tests/unit/test_playwright_browser.py — Playwright Environment Tests (no browser launch)
"""

from __future__ import annotations

from pathlib import Path

import pytest

from webpilot.browser.playwright_browser import PlaywrightBrowser, _is_closed_error, normalise_key
from webpilot.browser.types import InputField
from webpilot.config.settings import Settings
from webpilot.exceptions import SensorUnavailableError


class TestNormaliseKey:
    @pytest.mark.parametrize("raw,expected", [
        ("enter", "Enter"),
        ("Return", "Enter"),
        ("esc", "Escape"),
        ("Arrow Down", "ArrowDown"),
        ("down", "ArrowDown"),
        ("PageDown", "PageDown"),
        ("Control+A", "Control+A"),
        (" a ", "a"),
    ])
    def test_aliases(self, raw, expected):
        assert normalise_key(raw) == expected


class TestClosedErrors:
    @pytest.mark.parametrize("message", [
        "Target page, context or browser has been closed",
        "Target closed",
        "Browser has been closed",
    ])
    def test_closed(self, message):
        assert _is_closed_error(Exception(message))

    def test_other(self):
        assert not _is_closed_error(Exception("Timeout 20000ms exceeded"))


class TestPlaywrightBrowser:
    def test_from_settings(self, tmp_path):
        settings = Settings(BROWSER_USER_DATA_DIR=str(tmp_path / "profile"), browser={"headless": True})
        browser = PlaywrightBrowser.from_settings(settings)
        assert browser._user_data_dir == Path(tmp_path / "profile")
        assert browser._headless is True
        assert browser._viewport == (1920, 1080)

    def test_closed_before_start(self, tmp_path):
        assert PlaywrightBrowser(tmp_path).is_closed

    @pytest.mark.asyncio
    async def test_sensing_before_start_is_unavailable(self, tmp_path):
        with pytest.raises(SensorUnavailableError):
            await PlaywrightBrowser(tmp_path).current_url()

    @pytest.mark.asyncio
    async def test_close_before_start(self, tmp_path):
        browser = PlaywrightBrowser(tmp_path)
        await browser.close()
        assert browser.is_closed


class TestInputFieldDisplayName:
    @pytest.mark.parametrize("field,expected", [
        (InputField(label="Email", placeholder="you@x", name="email"), "Email"),
        (InputField(placeholder="Search", name="q"), "Search"),
        (InputField(name="q", id="query"), "q"),
        (InputField(id="query"), "query"),
        (InputField(), "(unlabelled)"),
    ])
    def test_precedence(self, field, expected):
        assert field.display_name == expected
