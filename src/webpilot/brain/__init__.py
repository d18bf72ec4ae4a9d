"""
brain/ — model access for the decision oracle.

    client = LLMClientFactory.from_settings(settings)   # ResilientLLMClient
    oracle = LLMDecisionOracle.from_settings(client, settings)
"""

from __future__ import annotations

from typing import Callable, Optional

from webpilot.brain.llm_client import (
    BaseLLMClient,
    LLMConnectionError,
    LLMContextError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitError,
    ResilientLLMClient,
)
from webpilot.brain.types import (
    FinishReason,
    LLMConfig,
    LLMResponse,
    Message,
    Provider,
    Role,
    TokenUsage,
)

__all__ = [
    "LLMClientFactory",
    "BaseLLMClient",
    "ResilientLLMClient",
    "LLMError",
    "LLMConnectionError",
    "LLMRateLimitError",
    "LLMContextError",
    "LLMInvalidRequestError",
    "Message",
    "LLMConfig",
    "LLMResponse",
    "TokenUsage",
    "Role",
    "Provider",
    "FinishReason",
]


def _openai(api_key: Optional[str], base_url: Optional[str]) -> BaseLLMClient:
    if not api_key:
        raise LLMConnectionError("OPENAI_API_KEY is required", provider="openai")
    from webpilot.brain.openai_client import OpenAIClient
    return OpenAIClient(api_key=api_key, base_url=base_url)


def _ollama(api_key: Optional[str], base_url: Optional[str]) -> BaseLLMClient:
    from webpilot.brain.ollama_client import OllamaClient
    return OllamaClient(host=base_url or "http://localhost:11434")


# Provider SDKs are imported on first use
_BUILDERS: dict[str, Callable[[Optional[str], Optional[str]], BaseLLMClient]] = {
    Provider.OPENAI.value: _openai,
    Provider.OLLAMA.value: _ollama,
}


class LLMClientFactory:

    @staticmethod
    def create(
        provider: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> BaseLLMClient:
        name = provider.lower().strip()
        builder = _BUILDERS.get(name)
        if builder is None:
            raise ValueError(
                f"Unknown LLM provider: '{name}'. Valid options: {', '.join(_BUILDERS)}"
            )
        return builder(api_key, base_url)

    @staticmethod
    def from_settings(settings) -> ResilientLLMClient:
        """
        The configured provider first, then llm.fallback_providers in order
        (duplicates of the primary skipped), all behind one ResilientLLMClient
        using llm.retry for per-client attempts and backoff.
        """
        credentials = {
            Provider.OPENAI.value: (settings.openai_api_key, None),
            Provider.OLLAMA.value: (None, settings.ollama_base_url),
        }

        def build(name: str) -> BaseLLMClient:
            api_key, base_url = credentials.get(name, (None, None))
            return LLMClientFactory.create(name, api_key=api_key, base_url=base_url)

        primary_name = settings.default_llm_provider
        chain = [primary_name]
        for name in settings.llm.fallback_providers:
            name = name.lower().strip()
            if name not in chain:
                chain.append(name)

        retry = settings.llm.retry
        return ResilientLLMClient(
            primary=build(primary_name),
            fallbacks=[build(name) for name in chain[1:]],
            max_attempts=retry.max_attempts,
            base_delay=retry.base_delay,
            max_delay=retry.max_delay,
        )
