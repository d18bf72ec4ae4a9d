"""
agent/parser.py — Decision Parser

Turns free-form oracle text into a Decision. parse_decision() is total: it
never raises and always returns some Decision, defaulting to `wait`.

Two independent paths:
  - decode_strict()    locate a JSON object and validate it as a Decision
  - extract_fallback() field-by-field regex scan of the raw text, used only
                         when the strict path fails

The assessment reply for the safety gate goes through the same
locate-then-decode steps in parse_assessment().
"""

from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel, ValidationError

from webpilot.agent.decision import Decision
from webpilot.observability.logger import get_logger

log = get_logger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# Patterns
# ─────────────────────────────────────────────────────────────────────────────

_FENCE_RE = re.compile(r"^```[\w-]*[ \t]*\r?\n?(.*?)\r?\n?```$", re.DOTALL)

# A flat object (no nested braces) with an "action" key
_ACTION_OBJECT_RE = re.compile(r"\{[^{}]*\"action\"\s*:[^{}]*\}")

_STRING_FIELDS = (
    "action", "reasoning", "selector", "text", "value", "url",
    "wait_for", "key", "input_prompt", "summary",
)
_BOOL_FIELDS = ("needs_input", "is_complete")
_INT_FIELDS = ("tab_index",)


def _string_pattern(field: str) -> re.Pattern[str]:
    return re.compile(rf'"{field}"\s*:\s*"([^"]*)"')


def _bool_pattern(field: str) -> re.Pattern[str]:
    return re.compile(rf'"{field}"\s*:\s*(true|false)', re.IGNORECASE)


def _int_pattern(field: str) -> re.Pattern[str]:
    # At most nine digits; longer runs are left unmatched
    return re.compile(rf'"{field}"\s*:\s*"?(-?\d{{1,9}})(?!\d)"?')


_FALLBACK_STRING = {f: _string_pattern(f) for f in _STRING_FIELDS}
_FALLBACK_BOOL = {f: _bool_pattern(f) for f in _BOOL_FIELDS}
_FALLBACK_INT = {f: _int_pattern(f) for f in _INT_FIELDS}


# ─────────────────────────────────────────────────────────────────────────────
# Locating the JSON
# ─────────────────────────────────────────────────────────────────────────────


def strip_code_fence(raw: str) -> str:
    """Trim whitespace and remove a surrounding ``` or ```json fence."""
    text = raw.strip()
    m = _FENCE_RE.match(text)
    if m:
        return m.group(1).strip()
    return text


def _balanced_span(text: str, pos: int = 0) -> Optional[tuple[int, int]]:
    """Span of the first balanced {...} block starting at or after `pos`.

    Braces inside JSON strings are skipped.
    """
    start = text.find("{", pos)
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return start, i + 1
        start = text.find("{", start + 1)
    return None


def first_balanced_object(text: str) -> Optional[str]:
    """Return the first balanced {...} block, or None if no block closes."""
    span = _balanced_span(text)
    return text[span[0]:span[1]] if span else None


def locate_json(text: str) -> str:
    """
    Pick the JSON candidate out of oracle text.

    A flat object with an "action" key is found first, then widened to its
    balanced closing brace (string values may hold braces). When that object
    sits inside an earlier balanced block, the outer block wins. With no
    "action" object the first balanced block is used, then the text itself.
    """
    m = _ACTION_OBJECT_RE.search(text)
    first = _balanced_span(text)
    if m is None:
        return text[first[0]:first[1]] if first else text
    if first and first[0] <= m.start() < first[1]:
        return text[first[0]:first[1]]
    own = _balanced_span(text, m.start())
    if own and own[0] == m.start():
        return text[own[0]:own[1]]
    return m.group(0)


# ─────────────────────────────────────────────────────────────────────────────
# Strict path
# ─────────────────────────────────────────────────────────────────────────────


def decode_strict(text: str) -> Decision:
    """
    Validate `text` as a Decision JSON object.

    Raises:
        ValidationError: not JSON, not an object, or a field has the wrong type.
    """
    return Decision.model_validate_json(text)


# ─────────────────────────────────────────────────────────────────────────────
# Fallback path
# ─────────────────────────────────────────────────────────────────────────────


def extract_fallback(raw: str) -> Decision:
    """
    Build a Decision from whatever fields can be pattern-matched in `raw`.

    Every field is searched independently and the first match wins. Missing
    action means `wait`; missing booleans mean False. Never raises.
    """
    fields: dict[str, object] = {}

    for name, pattern in _FALLBACK_STRING.items():
        m = pattern.search(raw)
        if m:
            fields[name] = m.group(1)

    for name, pattern in _FALLBACK_BOOL.items():
        m = pattern.search(raw)
        fields[name] = bool(m) and m.group(1).lower() == "true"

    for name, pattern in _FALLBACK_INT.items():
        m = pattern.search(raw)
        if m:
            fields[name] = int(m.group(1))

    return Decision(**fields)


# ─────────────────────────────────────────────────────────────────────────────
# Public entry point
# ─────────────────────────────────────────────────────────────────────────────


def parse_decision(raw: Optional[str]) -> Decision:
    """Parse oracle output into a Decision. Total: never raises."""
    text = strip_code_fence(raw or "")
    candidate = locate_json(text)

    try:
        decision = decode_strict(candidate)
        log.debug("parser.strict_ok", action=decision.action)
        return decision
    except (ValidationError, ValueError) as e:
        log.debug("parser.strict_failed", error=str(e)[:200])

    decision = extract_fallback(text)
    log.info(
        "parser.fallback_used",
        action=decision.action,
        raw_preview=text[:120],
    )
    return decision


# ─────────────────────────────────────────────────────────────────────────────
# Destructiveness assessment
# ─────────────────────────────────────────────────────────────────────────────


class DestructivenessAssessment(BaseModel):
    is_destructive: bool = True
    description: str = ""
    confirmation_question: str = ""


_ASSESS_BOOL_RE = _bool_pattern("is_destructive")
_ASSESS_DESC_RE = _string_pattern("description")
_ASSESS_QUESTION_RE = _string_pattern("confirmation_question")


def parse_assessment(raw: Optional[str]) -> DestructivenessAssessment:
    """
    Parse the oracle's destructiveness assessment.

    Anything that can't be read as an explicit `"is_destructive": false`
    is treated as destructive.
    """
    text = strip_code_fence(raw or "")
    block = first_balanced_object(text)
    if block is not None:
        try:
            return DestructivenessAssessment.model_validate_json(block)
        except ValidationError as e:
            log.debug("parser.assessment_strict_failed", error=str(e)[:200])

    flag = _ASSESS_BOOL_RE.search(text)
    desc = _ASSESS_DESC_RE.search(text)
    question = _ASSESS_QUESTION_RE.search(text)
    return DestructivenessAssessment(
        is_destructive=not (flag and flag.group(1).lower() == "false"),
        description=desc.group(1) if desc else "",
        confirmation_question=question.group(1) if question else "",
    )
