"""
brain/ollama_client.py — Ollama Local LLM Client

Runs the decision oracle against any model served by Ollama (llama3.1,
mistral, qwen2.5, ...). Generation goes through Ollama's OpenAI-compatible
/v1 endpoint, so the OpenAI SDK is reused; the health check talks to the
native /api/tags endpoint over httpx.
"""

from __future__ import annotations

import httpx

from webpilot.brain.llm_client import BaseLLMClient, LLMConnectionError
from webpilot.brain.openai_client import OpenAIClient
from webpilot.brain.types import LLMConfig, LLMResponse, Message, Provider
from webpilot.observability.logger import get_logger

log = get_logger(__name__)

_DEFAULT_HOST = "http://localhost:11434"


class OllamaClient(BaseLLMClient):
    """
    No API key required; Ollama must be running locally
    (or at `host`).
    """

    def __init__(self, host: str = _DEFAULT_HOST, health_timeout: float = 5.0):
        host = host.rstrip("/")
        if host.endswith("/v1"):
            host = host[: -len("/v1")]
        super().__init__(api_key="ollama", base_url=f"{host}/v1")
        self._host = host
        self._health_timeout = health_timeout
        self._inner = OpenAIClient(api_key="ollama", base_url=self.base_url)
        self._inner.provider = Provider.OLLAMA

    async def generate(self, messages: list[Message], config: LLMConfig) -> LLMResponse:
        log.debug("ollama.generate.start", model=config.model)
        try:
            return await self._inner.generate(messages, config)
        except LLMConnectionError as e:
            raise LLMConnectionError(
                f"Cannot reach Ollama at {self._host}. Is `ollama serve` running?",
                provider="ollama",
            ) from e

    async def list_models(self) -> list[str]:
        """Return names of all models available in Ollama."""
        async with httpx.AsyncClient(timeout=self._health_timeout) as client:
            resp = await client.get(f"{self._host}/api/tags")
            resp.raise_for_status()
            return [m.get("name", "") for m in resp.json().get("models", [])]

    async def health_check(self) -> bool:
        """Check if Ollama is running and reachable."""
        try:
            models = await self.list_models()
        except (httpx.HTTPError, ValueError) as e:
            log.warning("ollama.health_check.failed", host=self._host, error=str(e))
            return False
        log.debug("ollama.health_check.ok", available_models=models)
        return True

    def __repr__(self) -> str:
        return f"<OllamaClient host={self._host}>"
