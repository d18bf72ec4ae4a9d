"""
brain/llm_client.py — LLM Transport Base + Retrying Wrapper

Provider clients (OpenAI, Ollama) subclass BaseLLMClient. ResilientLLMClient
sits between them and the decision oracle:

    oracle ──► ResilientLLMClient ──► primary ──► fallback 1 ──► ...
                 (retries transient errors per client, then fails over)

Errors marked `transient` (connection drops, rate limits) are retried with
exponential backoff plus jitter; a rate limit's Retry-After wins over the
computed delay. Permanent errors (context overflow, rejected request) go
straight up and skip failover.

Only a request that every client has given up on reaches the control loop,
where the oracle turns it into an OracleError.
"""

from __future__ import annotations

import asyncio
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from webpilot.brain.types import LLMConfig, LLMResponse, Message
from webpilot.observability.logger import get_logger

log = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Exceptions
# ─────────────────────────────────────────────────────────────────────────────


class LLMError(Exception):
    """Any failure talking to a model provider."""

    transient = False

    def __init__(self, message: str, provider: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class LLMConnectionError(LLMError):
    """Provider unreachable, timed out, or refused the credentials."""

    transient = True


class LLMRateLimitError(LLMError):
    transient = True

    def __init__(self, message: str, provider: str = "", retry_after: Optional[float] = None):
        super().__init__(message, provider, status_code=429)
        self.retry_after = retry_after


class LLMContextError(LLMError):
    """Prompt plus page context is longer than the model accepts."""


class LLMInvalidRequestError(LLMError):
    """The provider rejected the request parameters."""


# ─────────────────────────────────────────────────────────────────────────────
# Base client
# ─────────────────────────────────────────────────────────────────────────────


class BaseLLMClient(ABC):

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key
        self.base_url = base_url

    @abstractmethod
    async def generate(self, messages: list[Message], config: LLMConfig) -> LLMResponse:
        """Send one chat request and return the normalised reply."""

    @abstractmethod
    async def health_check(self) -> bool:
        """True when the provider answers and accepts our credentials."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"


# ─────────────────────────────────────────────────────────────────────────────
# Backoff
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Backoff:
    """delay(n) = min(base * 2**n + jitter, cap); Retry-After overrides the formula."""

    base: float = 1.0
    cap: float = 30.0
    jitter: float = 0.5

    def delay(self, attempt: int, error: LLMError) -> float:
        retry_after = getattr(error, "retry_after", None)
        if retry_after:
            return min(retry_after, self.cap)
        return min(self.base * (2 ** attempt) + random.uniform(0, self.jitter), self.cap)


# ─────────────────────────────────────────────────────────────────────────────
# ResilientLLMClient
# ─────────────────────────────────────────────────────────────────────────────


class ResilientLLMClient(BaseLLMClient):
    """
    Usage:
        client = ResilientLLMClient(
            primary=LLMClientFactory.create("openai", api_key=...),
            fallbacks=[LLMClientFactory.create("ollama")],
        )
        response = await client.generate(messages, config)
    """

    def __init__(
        self,
        primary: BaseLLMClient,
        fallbacks: Optional[list[BaseLLMClient]] = None,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__()
        self._chain: list[BaseLLMClient] = [primary, *(fallbacks or [])]
        self._max_attempts = max(1, max_attempts)
        self._backoff = Backoff(base=base_delay, cap=max_delay)
        self._sleep = sleep
        self._active: BaseLLMClient = primary

    @property
    def primary(self) -> BaseLLMClient:
        return self._chain[0]

    @property
    def active(self) -> BaseLLMClient:
        """The client that answered last (the primary until a failover happens)."""
        return self._active

    async def generate(self, messages: list[Message], config: LLMConfig) -> LLMResponse:
        last: Optional[LLMError] = None

        for position, client in enumerate(self._chain):
            if last is not None:
                log.warning("llm.failover", to_client=repr(client), after_error=str(last))
            try:
                response = await self._with_retries(client, messages, config)
            except (LLMContextError, LLMInvalidRequestError):
                raise
            except LLMError as e:
                last = e
                log.error(
                    "llm.client_gave_up",
                    client=repr(client),
                    error=str(e),
                    remaining=len(self._chain) - position - 1,
                )
                continue
            self._active = client
            return response

        raise LLMError(f"All LLM clients failed. Last error: {last}", provider="all")

    async def _with_retries(
        self, client: BaseLLMClient, messages: list[Message], config: LLMConfig
    ) -> LLMResponse:
        attempt = 0
        while True:
            try:
                return await client.generate(messages=messages, config=config)
            except LLMError as e:
                attempt += 1
                if not e.transient or attempt >= self._max_attempts:
                    raise
                delay = self._backoff.delay(attempt - 1, e)
                log.warning(
                    "llm.retry",
                    client=repr(client),
                    attempt=attempt,
                    of=self._max_attempts,
                    delay_s=round(delay, 2),
                    error_type=type(e).__name__,
                )
                await self._sleep(delay)

    async def health_check(self) -> bool:
        return await self._active.health_check()

    def __repr__(self) -> str:
        extra = len(self._chain) - 1
        suffix = f" + {extra} fallback(s)" if extra else ""
        return f"<ResilientLLMClient primary={self.primary!r}{suffix}>"
