"""
safety/gate.py — Safety Gate

Sits between the parsed decision and the executor. Every decision passes
through here before it touches the browser.

Decision flow:
  1. Keyword screen: action, text and reasoning against destructive keywords,
     plus compound rules over the text (cart + checkout). No hit → APPROVED.
  2. Ask the oracle to assess the flagged action. If that call or its parse
     fails, the action is treated as destructive.
  3. Not destructive → APPROVED without asking anyone.
  4. Destructive → ask the human through the confirm callback. Only an
     affirmative answer (yes / y / да / д) → CONFIRMED; anything else,
     including a failed or timed-out read → CANCELLED.
  5. Emit a "safety.decision" audit log entry.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Iterable, Optional, Sequence

from webpilot.agent.decision import Decision
from webpilot.agent.parser import DestructivenessAssessment, parse_assessment
from webpilot.brain.oracle import DecisionOracle
from webpilot.exceptions import DestructiveActionCancelled, OracleError
from webpilot.observability.logger import get_logger

log = get_logger(__name__)

_DEFAULT_DESCRIPTION = "The action may cause irreversible changes"


class GateStatus(str, Enum):
    APPROVED = "approved"       # not destructive, no prompt shown
    CONFIRMED = "confirmed"     # destructive, human said yes
    CANCELLED = "cancelled"     # destructive, human said anything else


@dataclass(frozen=True)
class ConfirmationRequest:
    """What the front end shows the human before a destructive action."""
    action: str
    description: str
    question: str
    target: str = ""


ConfirmCallback = Callable[[ConfirmationRequest], Awaitable[str]]


@dataclass(frozen=True)
class GateVerdict:
    status: GateStatus
    flagged: bool = False
    description: str = ""

    @property
    def may_execute(self) -> bool:
        return self.status != GateStatus.CANCELLED


def describe_action(decision: Decision) -> str:
    """One-line description of a decision for the destructiveness assessment."""
    parts = [decision.action]
    for name in ("text", "selector", "url", "value"):
        v = getattr(decision, name)
        if v:
            parts.append(f"{name}='{v}'")
    line = " ".join(parts)
    if decision.reasoning:
        line += f" ({decision.reasoning})"
    return line


class SafetyGate:
    """
    Usage:
        gate = SafetyGate(oracle, confirm=ask_user)
        verdict = await gate.review(decision, "URL: ..., Title: ...")
        if verdict.may_execute:
            await executor.execute(decision)
    """

    def __init__(
        self,
        oracle: DecisionOracle,
        confirm: Optional[ConfirmCallback] = None,
        destructive_keywords: Iterable[str] = (),
        compound_rules: Sequence[Sequence[Sequence[str]]] = (),
        affirmative_answers: Iterable[str] = ("yes", "y", "да", "д"),
        confirmation_timeout: Optional[float] = None,
    ):
        self._oracle = oracle
        self._confirm = confirm
        self._keywords = tuple(k.lower() for k in destructive_keywords)
        self._compound_rules = tuple(
            tuple(tuple(w.lower() for w in group) for group in rule) for rule in compound_rules
        )
        self._affirmative = frozenset(a.strip().lower() for a in affirmative_answers)
        self._confirmation_timeout = confirmation_timeout

    @classmethod
    def from_settings(
        cls, oracle: DecisionOracle, confirm: Optional[ConfirmCallback], settings
    ) -> "SafetyGate":
        s = settings.safety
        return cls(
            oracle,
            confirm=confirm,
            destructive_keywords=s.destructive_keywords,
            compound_rules=s.compound_rules,
            affirmative_answers=s.affirmative_answers,
            confirmation_timeout=s.confirmation_timeout_seconds,
        )

    # ── Screening ─────────────────────────────────────────────────────────────

    def is_potentially_destructive(self, decision: Decision) -> bool:
        fields = [
            (decision.action or "").lower(),
            (decision.text or "").lower(),
            (decision.reasoning or "").lower(),
        ]
        for keyword in self._keywords:
            if any(keyword in f for f in fields):
                return True

        text = fields[1]
        for rule in self._compound_rules:
            if all(any(w in text for w in group) for group in rule):
                return True
        return False

    def is_affirmative(self, answer: Optional[str]) -> bool:
        if answer is None:
            return False
        return answer.strip().lower() in self._affirmative

    # ── Review ────────────────────────────────────────────────────────────────

    async def review(self, decision: Decision, context_summary: str) -> GateVerdict:
        if not self.is_potentially_destructive(decision):
            return GateVerdict(GateStatus.APPROVED)

        assessment = await self._assess(decision, context_summary)
        if not assessment.is_destructive:
            self._audit(decision, GateStatus.APPROVED, "assessed as not destructive")
            return GateVerdict(GateStatus.APPROVED, flagged=True, description=assessment.description)

        description = assessment.description or _DEFAULT_DESCRIPTION
        request = ConfirmationRequest(
            action=decision.action,
            description=description,
            question=assessment.confirmation_question or "Confirm this action? (yes/no)",
            target=decision.text or decision.selector or decision.url or "",
        )
        answer = await self._ask_human(request)
        status = GateStatus.CONFIRMED if self.is_affirmative(answer) else GateStatus.CANCELLED
        self._audit(decision, status, description)
        return GateVerdict(status, flagged=True, description=description)

    async def enforce(self, decision: Decision, context_summary: str) -> GateVerdict:
        """
        Same as review() but raises on refusal.

        Raises:
            DestructiveActionCancelled: the human did not confirm.
        """
        verdict = await self.review(decision, context_summary)
        if not verdict.may_execute:
            raise DestructiveActionCancelled(decision.action, verdict.description)
        return verdict

    async def _assess(self, decision: Decision, context_summary: str) -> DestructivenessAssessment:
        try:
            raw = await self._oracle.assess_destructiveness(describe_action(decision), context_summary)
        except OracleError as e:
            log.warning("safety.assessment_failed", action=decision.action, error=str(e))
            return DestructivenessAssessment(is_destructive=True, description=_DEFAULT_DESCRIPTION)
        return parse_assessment(raw)

    async def _ask_human(self, request: ConfirmationRequest) -> Optional[str]:
        if self._confirm is None:
            log.warning("safety.no_confirm_channel", action=request.action)
            return None
        try:
            if self._confirmation_timeout is None:
                return await self._confirm(request)
            return await asyncio.wait_for(self._confirm(request), timeout=self._confirmation_timeout)
        except asyncio.TimeoutError:
            log.warning("safety.confirm_timeout", action=request.action,
                        timeout=self._confirmation_timeout)
            return None
        except (EOFError, OSError) as e:
            log.warning("safety.confirm_read_failed", action=request.action, error=str(e))
            return None

    def _audit(self, decision: Decision, status: GateStatus, reason: str) -> None:
        log_fn = log.warning if status == GateStatus.CANCELLED else log.info
        log_fn(
            "safety.decision",
            action=decision.action,
            target=decision.text or decision.selector or "",
            status=status.value,
            reason=reason,
        )
