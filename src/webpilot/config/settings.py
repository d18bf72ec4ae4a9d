"""
config/settings.py — WebPilot Runtime Settings

Merges config.yaml (defaults/structure) with .env (secrets).
Pydantic-powered: all fields are validated and typed.

  - Loop tuning (iteration limit, breaker, loop-detection window/threshold)
    lives in `agent`; backoff constants live in `retry`
  - Destructive keyword rules live in `safety` so they can be extended
    without code changes
  - validate_all() performs full startup validation and raises ConfigError
    with a clear, human-readable message listing every problem found
  - load_settings() respects WEBPILOT_CONFIG env var as a fallback
    when no explicit config_path argument is given
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────

class ConfigError(Exception):
    """Raised by validate_all() when one or more config problems are found."""


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_KNOWN_PROVIDERS = {"openai", "ollama"}

_DEFAULT_DESTRUCTIVE_KEYWORDS: list[str] = [
    # delete / remove
    "delete", "remove", "удалить", "удаление",
    # pay / purchase
    "pay", "payment", "purchase", "buy", "оплатить", "купить",
    # confirm / submit
    "confirm", "submit", "подтвердить", "отправить",
    # cancel
    "cancel", "отменить", "отмена",
    # modify / edit
    "modify", "edit", "change", "изменить", "редактировать",
    # save
    "save", "сохранить", "сохранение",
]

# Each rule is a list of groups; a rule matches when every group has a hit.
_DEFAULT_COMPOUND_RULES: list[list[list[str]]] = [
    [
        ["cart", "корзина"],
        ["checkout", "place order", "оформить", "заказать"],
    ],
]


# ─────────────────────────────────────────────────────────────────────────────
# Sub-models
# ─────────────────────────────────────────────────────────────────────────────

class AgentConfig(BaseModel):
    name: str = "WebPilot"
    version: str = "1.0.0"
    max_iterations: int = 50
    max_errors: int = 5
    task_timeout_seconds: float = 900.0
    history_window: int = 7
    loop_detection_window: int = 5
    loop_detection_threshold: int = 3
    completion_markers: List[str] = Field(
        default_factory=lambda: ["complete", "задача выполнена"]
    )
    step_delay_seconds: float = 1.0
    cancel_delay_seconds: float = 1.0

    @field_validator("max_iterations", "max_errors", "history_window",
                     "loop_detection_window", "loop_detection_threshold")
    @classmethod
    def _positive_int(cls, v: int, info: ValidationInfo) -> int:
        if v < 1:
            raise ValueError(f"agent.{info.field_name} must be >= 1")
        return v

    @field_validator("task_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("agent.task_timeout_seconds must be > 0")
        return v

    @field_validator("completion_markers")
    @classmethod
    def _lowercase_markers(cls, v: list[str]) -> list[str]:
        return [m.lower() for m in v if m.strip()]


class RetryConfig(BaseModel):
    """Linear, capped backoff for execution failures plus local sensor retry."""
    base_delay_seconds: float = 2.0
    max_delay_seconds: float = 10.0
    sensor_attempts: int = 3
    sensor_pacing_seconds: float = 1.0

    @field_validator("base_delay_seconds", "max_delay_seconds", "sensor_pacing_seconds")
    @classmethod
    def _non_negative(cls, v: float, info: ValidationInfo) -> float:
        if v < 0:
            raise ValueError(f"retry.{info.field_name} must be >= 0")
        return v

    @field_validator("sensor_attempts")
    @classmethod
    def _positive_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("retry.sensor_attempts must be >= 1")
        return v


class LLMRetryConfig(BaseModel):
    """Exponential backoff config for transient LLM errors."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0


class LLMConfig(BaseModel):
    default_provider: str = "openai"
    default_model: str = "gpt-4-turbo-preview"
    decision_temperature: float = 0.7
    decision_max_tokens: int = 500
    assessment_temperature: float = 0.3
    assessment_max_tokens: int = 200
    timeout_seconds: float = 60.0
    retry: LLMRetryConfig = Field(default_factory=LLMRetryConfig)
    fallback_providers: List[str] = Field(default_factory=list)

    @field_validator("default_provider")
    @classmethod
    def _known_provider(cls, v: str) -> str:
        if v not in _KNOWN_PROVIDERS:
            raise ValueError(
                f"llm.default_provider '{v}' is not supported. "
                f"Supported: {sorted(_KNOWN_PROVIDERS)}"
            )
        return v

    @field_validator("fallback_providers")
    @classmethod
    def _known_fallbacks(cls, v: list[str]) -> list[str]:
        unknown = [p for p in v if p not in _KNOWN_PROVIDERS]
        if unknown:
            raise ValueError(
                f"llm.fallback_providers contains unsupported provider(s) {unknown}. "
                f"Supported: {sorted(_KNOWN_PROVIDERS)}"
            )
        return v

    @field_validator("decision_temperature", "assessment_temperature")
    @classmethod
    def _valid_temperature(cls, v: float, info: ValidationInfo) -> float:
        if not (0.0 <= v <= 2.0):
            raise ValueError(f"llm.{info.field_name} must be between 0.0 and 2.0")
        return v

    @field_validator("decision_max_tokens", "assessment_max_tokens")
    @classmethod
    def _positive_tokens(cls, v: int, info: ValidationInfo) -> int:
        if v < 1:
            raise ValueError(f"llm.{info.field_name} must be >= 1")
        return v


class BrowserConfig(BaseModel):
    user_data_dir: str = "./browser_data"
    start_url: str = "https://www.google.com"
    headless: bool = False
    keep_open: bool = False
    viewport_width: int = 1920
    viewport_height: int = 1080
    quick_snapshot_timeout_seconds: float = 15.0
    full_snapshot_timeout_seconds: float = 45.0
    action_timeout_seconds: float = 20.0
    wait_for_timeout_seconds: float = 10.0
    wait_pause_seconds: float = 2.0
    keepalive_interval_seconds: float = 30.0
    keepalive_timeout_seconds: float = 5.0
    screenshot_dir: Optional[str] = None

    @field_validator("keepalive_interval_seconds", "keepalive_timeout_seconds",
                     "quick_snapshot_timeout_seconds", "full_snapshot_timeout_seconds",
                     "action_timeout_seconds", "wait_for_timeout_seconds")
    @classmethod
    def _positive_seconds(cls, v: float, info: ValidationInfo) -> float:
        if v <= 0:
            raise ValueError(f"browser.{info.field_name} must be > 0")
        return v


class SafetyConfig(BaseModel):
    destructive_keywords: List[str] = Field(
        default_factory=lambda: list(_DEFAULT_DESTRUCTIVE_KEYWORDS)
    )
    compound_rules: List[List[List[str]]] = Field(
        default_factory=lambda: [list(map(list, r)) for r in _DEFAULT_COMPOUND_RULES]
    )
    affirmative_answers: List[str] = Field(
        default_factory=lambda: ["yes", "y", "да", "д"]
    )
    # None = block on the human indefinitely
    confirmation_timeout_seconds: Optional[float] = None

    @field_validator("destructive_keywords", "affirmative_answers")
    @classmethod
    def _normalise_words(cls, v: list[str]) -> list[str]:
        return [w.strip().lower() for w in v if w.strip()]

    @field_validator("confirmation_timeout_seconds")
    @classmethod
    def _positive_confirm_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("safety.confirmation_timeout_seconds must be > 0 or null")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: str = "./data/logs"
    max_file_size_mb: int = 100
    backup_count: int = 5
    console_output: bool = False
    json_format: bool = True

    @field_validator("level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level '{v}' is not valid. "
                f"Must be one of: {sorted(_VALID_LOG_LEVELS)}"
            )
        return upper


# ─────────────────────────────────────────────────────────────────────────────
# Root Settings
# ─────────────────────────────────────────────────────────────────────────────

_KNOWN_SECTIONS = {"agent", "retry", "llm", "browser", "safety", "logging"}


class Settings(BaseSettings):
    """
    WebPilot runtime settings.

    Priority (highest to lowest):
      1. Environment variables
      2. .env file
      3. config.yaml
      4. Field defaults
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    # -- Secrets and flat overrides from .env --------------------------------
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_model: Optional[str] = Field(default=None, alias="OPENAI_MODEL")
    ollama_base_url: str = Field(default="http://localhost:11434", alias="OLLAMA_BASE_URL")
    browser_user_data_dir: Optional[str] = Field(default=None, alias="BROWSER_USER_DATA_DIR")
    start_url_override: Optional[str] = Field(default=None, alias="START_URL")
    keep_browser_open: Optional[bool] = Field(default=None, alias="KEEP_BROWSER_OPEN")

    # -- Structured config (from config.yaml) --------------------------------
    agent: AgentConfig = Field(default_factory=AgentConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    safety: SafetyConfig = Field(default_factory=SafetyConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("keep_browser_open", mode="before")
    @classmethod
    def _coerce_keep_open(cls, v: Any) -> Optional[bool]:
        if v in (None, "", "null"):
            return None
        return v

    # -- Convenience properties ----------------------------------------------

    @property
    def default_llm_provider(self) -> str:
        return self.llm.default_provider

    @property
    def default_llm_model(self) -> str:
        if self.llm.default_provider == "openai" and self.openai_model:
            return self.openai_model
        return self.llm.default_model

    @property
    def user_data_dir(self) -> Path:
        return Path(self.browser_user_data_dir or self.browser.user_data_dir).expanduser()

    @property
    def start_url(self) -> str:
        return self.start_url_override or self.browser.start_url

    @property
    def keep_open(self) -> bool:
        if self.keep_browser_open is not None:
            return self.keep_browser_open
        return self.browser.keep_open

    @property
    def log_level(self) -> str:
        return self.logging.level.upper()

    @property
    def log_dir(self) -> Path:
        return Path(self.logging.log_dir)

    @property
    def ollama_base_url_v1(self) -> str:
        return self.ollama_base_url.rstrip("/") + "/v1"

    def validate_all(self) -> None:
        """
        Full startup validation. Raises ConfigError listing every problem found.

        Pydantic field validators catch type/value errors at parse time; this
        method catches cross-field problems Pydantic can't see.
        """
        errors: list[str] = []

        # ── LLM provider API key ─────────────────────────────────────────────
        if self.llm.default_provider == "openai" and not self.openai_api_key:
            errors.append(
                "LLM provider 'openai' requires OPENAI_API_KEY to be set "
                "in your .env file."
            )
        if "openai" in self.llm.fallback_providers and not self.openai_api_key:
            errors.append(
                "Fallback provider 'openai' requires OPENAI_API_KEY but it "
                "is not set. Remove it from llm.fallback_providers or add the key."
            )

        # ── Loop detection must fit inside its window ────────────────────────
        if self.agent.loop_detection_threshold > self.agent.loop_detection_window:
            errors.append(
                f"agent.loop_detection_threshold ({self.agent.loop_detection_threshold}) "
                f"must not exceed agent.loop_detection_window "
                f"({self.agent.loop_detection_window})."
            )

        if not self.agent.completion_markers:
            errors.append("agent.completion_markers must contain at least one marker.")

        # ── Backoff cap ──────────────────────────────────────────────────────
        if self.retry.max_delay_seconds < self.retry.base_delay_seconds:
            errors.append(
                "retry.max_delay_seconds must be >= retry.base_delay_seconds."
            )

        # ── Safety gate must have something to match ─────────────────────────
        if not self.safety.destructive_keywords:
            errors.append(
                "safety.destructive_keywords is empty, which disables the "
                "destructive-action gate entirely."
            )
        if not self.safety.affirmative_answers:
            errors.append(
                "safety.affirmative_answers is empty; no confirmation could "
                "ever be accepted."
            )
        for i, rule in enumerate(self.safety.compound_rules):
            if not rule or any(not group for group in rule):
                errors.append(f"safety.compound_rules[{i}] has an empty keyword group.")

        # ── Start URL must be absolute ───────────────────────────────────────
        if not self.start_url.startswith(("http://", "https://", "about:")):
            errors.append(
                f"browser.start_url '{self.start_url}' must start with "
                f"http://, https:// or about:."
            )

        if errors:
            numbered = "\n".join(f"  {i+1}. {e}" for i, e in enumerate(errors))
            raise ConfigError(
                f"\n\nWebPilot startup failed: {len(errors)} configuration "
                f"problem(s) found:\n\n{numbered}\n\n"
                f"Fix the issues above in config/config.yaml or your .env file "
                f"and restart.\n"
            )


# ─────────────────────────────────────────────────────────────────────────────
# Loader
# ─────────────────────────────────────────────────────────────────────────────

def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _resolve_config_path(config_path: str | Path | None) -> Path:
    """
    Resolve the config file path with this priority:
      1. Explicit config_path argument (from --config CLI flag)
      2. WEBPILOT_CONFIG environment variable
      3. Default: config/config.yaml
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get("WEBPILOT_CONFIG")
    if env_path:
        return Path(env_path)
    return Path("config/config.yaml")


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings by merging config.yaml with environment variables."""
    yaml_data = _load_yaml(_resolve_config_path(config_path))
    init_kwargs = {k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS}

    return Settings(**init_kwargs)
