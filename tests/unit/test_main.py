"""
tests/unit/test_main.py — Entry Point Tests (argument parsing and bootstrap)
"""

from __future__ import annotations

import pytest

from webpilot.main import bootstrap, parse_args


class TestParseArgs:
    def test_defaults(self):
        args = parse_args([])
        assert args.config is None
        assert args.log_level is None
        assert args.headless is False

    def test_flags(self):
        args = parse_args(["--config", "my.yaml", "--log-level", "DEBUG", "--headless"])
        assert (args.config, args.log_level, args.headless) == ("my.yaml", "DEBUG", True)

    def test_bad_log_level(self):
        with pytest.raises(SystemExit):
            parse_args(["--log-level", "LOUD"])


class TestBootstrap:
    def _config(self, tmp_path, body: str):
        path = tmp_path / "config.yaml"
        path.write_text(body, encoding="utf-8")
        return str(path)

    def test_valid_config(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        cfg = self._config(tmp_path, f"logging:\n  log_dir: {tmp_path / 'logs'}\n")
        settings, log = bootstrap(parse_args(["--config", cfg, "--headless"]))
        assert settings.browser.headless is True
        assert log is not None

    def test_invalid_value_exits(self, tmp_path, capsys):
        cfg = self._config(tmp_path, "agent:\n  max_iterations: 0\n")
        with pytest.raises(SystemExit) as exc_info:
            bootstrap(parse_args(["--config", cfg]))
        assert exc_info.value.code == 1
        assert "agent.max_iterations" in capsys.readouterr().err

    def test_cross_field_problem_exits(self, tmp_path, capsys):
        cfg = self._config(tmp_path, "llm:\n  default_provider: openai\n")
        with pytest.raises(SystemExit) as exc_info:
            bootstrap(parse_args(["--config", cfg]))
        assert exc_info.value.code == 1
        assert "OPENAI_API_KEY" in capsys.readouterr().err
