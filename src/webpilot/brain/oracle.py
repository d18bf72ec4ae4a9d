"""
brain/oracle.py — LLM Decision Oracle

The oracle is the loop's only source of decisions. It returns raw model text;
parsing is the agent's job (agent/parser.py). Transport failures surface as
OracleError after ResilientLLMClient has exhausted its own retries.

    oracle = LLMDecisionOracle(client, model="gpt-4-turbo-preview")
    raw = await oracle.decide(task, context, history)
    raw = await oracle.assess_destructiveness("click: Delete account", "URL: ..., Title: ...")
"""

from __future__ import annotations

from typing import Protocol, Sequence

from webpilot.brain.llm_client import BaseLLMClient, LLMError
from webpilot.brain.prompts import (
    ASSESSMENT_SYSTEM_PROMPT,
    build_assessment_prompt,
    build_decision_prompt,
    build_system_prompt,
)
from webpilot.brain.types import LLMConfig, Message
from webpilot.exceptions import OracleError
from webpilot.observability.logger import get_logger

log = get_logger(__name__)


class DecisionOracle(Protocol):
    """What the control loop and safety gate need from an oracle."""

    async def decide(
        self, task: str, context: str, history: Sequence[str], instructions: str = ""
    ) -> str: ...

    async def assess_destructiveness(self, action: str, context_summary: str) -> str: ...


class LLMDecisionOracle:

    def __init__(
        self,
        client: BaseLLMClient,
        model: str,
        decision_temperature: float = 0.7,
        decision_max_tokens: int = 500,
        assessment_temperature: float = 0.3,
        assessment_max_tokens: int = 200,
        timeout_seconds: float = 60.0,
    ):
        self._client = client
        self._decision_cfg = LLMConfig(
            model=model,
            temperature=decision_temperature,
            max_tokens=decision_max_tokens,
            timeout_seconds=timeout_seconds,
        )
        self._assessment_cfg = LLMConfig(
            model=model,
            temperature=assessment_temperature,
            max_tokens=assessment_max_tokens,
            timeout_seconds=timeout_seconds,
        )

    @classmethod
    def from_settings(cls, client: BaseLLMClient, settings) -> "LLMDecisionOracle":
        llm = settings.llm
        return cls(
            client,
            model=settings.default_llm_model,
            decision_temperature=llm.decision_temperature,
            decision_max_tokens=llm.decision_max_tokens,
            assessment_temperature=llm.assessment_temperature,
            assessment_max_tokens=llm.assessment_max_tokens,
            timeout_seconds=llm.timeout_seconds,
        )

    @property
    def model(self) -> str:
        return self._decision_cfg.model

    async def decide(
        self, task: str, context: str, history: Sequence[str], instructions: str = ""
    ) -> str:
        messages = [
            Message.system(build_system_prompt(instructions)),
            Message.user(build_decision_prompt(task, context, history)),
        ]
        return await self._ask("decide", messages, self._decision_cfg)

    async def assess_destructiveness(self, action: str, context_summary: str) -> str:
        messages = [
            Message.system(ASSESSMENT_SYSTEM_PROMPT),
            Message.user(build_assessment_prompt(action, context_summary)),
        ]
        return await self._ask("assess", messages, self._assessment_cfg)

    async def _ask(self, call: str, messages: list[Message], cfg: LLMConfig) -> str:
        try:
            response = await self._client.generate(messages, cfg)
        except LLMError as e:
            log.warning(
                "oracle.call_failed",
                call=call,
                provider=e.provider,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise OracleError(f"Oracle {call} call failed: {e}") from e

        log.debug(
            "oracle.response",
            call=call,
            model=response.model or cfg.model,
            finish_reason=response.finish_reason.value,
            output_tokens=response.usage.output_tokens,
        )
        return response.text
