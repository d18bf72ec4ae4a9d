"""
brain/openai_client.py — OpenAI Chat Completions Client

Plain chat only: the oracle sends a system + user message and reads one text
completion back. Works against api.openai.com or any OpenAI-compatible
endpoint (Ollama's /v1, vLLM, LiteLLM) via base_url.
"""

from __future__ import annotations

from typing import Optional

import openai
from openai import AsyncOpenAI

from webpilot.brain.llm_client import (
    BaseLLMClient,
    LLMConnectionError,
    LLMContextError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitError,
)
from webpilot.brain.types import (
    FinishReason,
    LLMConfig,
    LLMResponse,
    Message,
    Provider,
    TokenUsage,
)
from webpilot.observability.logger import get_logger

log = get_logger(__name__)

_CONTEXT_HINTS = ("context", "too long", "maximum length")


def translate_error(e: openai.OpenAIError, provider: str = "openai") -> LLMError:
    """Map an SDK exception onto the LLMError family (transient vs permanent)."""
    status = getattr(e, "status_code", None)
    if isinstance(e, openai.AuthenticationError):
        return LLMConnectionError(str(e), provider=provider, status_code=401)
    if isinstance(e, openai.RateLimitError):
        try:
            retry_after: Optional[float] = float(e.response.headers.get("retry-after", ""))
        except (AttributeError, ValueError):
            retry_after = None
        return LLMRateLimitError(str(e), provider=provider, retry_after=retry_after)
    if isinstance(e, openai.BadRequestError):
        if any(hint in str(e).lower() for hint in _CONTEXT_HINTS):
            return LLMContextError(str(e), provider=provider, status_code=status)
        return LLMInvalidRequestError(str(e), provider=provider, status_code=status)
    if isinstance(e, (openai.APIConnectionError, openai.APITimeoutError)):
        return LLMConnectionError(str(e), provider=provider)
    if status is not None and status >= 500:
        return LLMConnectionError(str(e), provider=provider, status_code=status)
    return LLMError(str(e), provider=provider, status_code=status)


class OpenAIClient(BaseLLMClient):

    provider: Provider = Provider.OPENAI

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        organization: Optional[str] = None,
    ):
        super().__init__(api_key=api_key, base_url=base_url)
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, organization=organization)

    async def generate(self, messages: list[Message], config: LLMConfig) -> LLMResponse:
        try:
            completion = await self._client.chat.completions.create(
                model=config.model,
                messages=self._to_provider_messages(messages),
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                top_p=config.top_p,
                timeout=config.timeout_seconds,
            )
        except openai.OpenAIError as e:
            raise translate_error(e, self.provider.value) from e

        result = self._from_provider_response(completion)
        log.debug(
            "llm.completion",
            provider=self.provider.value,
            model=result.model,
            prompt_tokens=result.usage.input_tokens,
            completion_tokens=result.usage.output_tokens,
            truncated=result.finish_reason == FinishReason.LENGTH,
        )
        return result

    async def health_check(self) -> bool:
        try:
            await self._client.models.list()
        except openai.OpenAIError as e:
            log.warning(
                f"{self.provider.value}.health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        return True

    # ── Translation ───────────────────────────────────────────────────────────

    @staticmethod
    def _to_provider_messages(messages: list[Message]) -> list[dict]:
        return [{"role": m.role.value, "content": m.content} for m in messages]

    def _from_provider_response(self, completion) -> LLMResponse:
        if not completion.choices:
            raise LLMError("OpenAI returned no choices", provider=self.provider.value)
        choice = completion.choices[0]
        usage = completion.usage

        return LLMResponse(
            content=choice.message.content,
            finish_reason=FinishReason.LENGTH if choice.finish_reason == "length" else FinishReason.STOP,
            usage=TokenUsage(
                input_tokens=usage.prompt_tokens if usage else 0,
                output_tokens=usage.completion_tokens if usage else 0,
            ),
            model=completion.model,
            provider=self.provider,
        )
