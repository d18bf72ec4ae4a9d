"""
agent/classifier.py — Task Classifier & Strategy Dispatch

A task is labelled once, before the loop starts, by walking an ordered rule
table: the first rule with a keyword found in the lower-cased task text
wins, and `generic` is the default.

Each category maps to a TaskStrategy. A strategy never replaces the control
loop; it only contributes extra oracle instructions and may veto a decision
before the safety gate by raising ActionError, which the loop treats like
any other execution failure.

    category = classify("Проверь почту и удали спам")   # TaskCategory.EMAIL
    strategy = dispatch(category)                        # EmailStrategy()
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from webpilot.agent.decision import Decision
from webpilot.exceptions import ActionError
from webpilot.observability.logger import get_logger

log = get_logger(__name__)


class TaskCategory(str, Enum):
    GENERIC = "generic"
    EMAIL = "email"
    FOOD_ORDER = "food_order"
    JOB_SEARCH = "job_search"


# ─────────────────────────────────────────────────────────────────────────────
# Rule table
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ClassificationRule:
    category: TaskCategory
    keywords: tuple[str, ...]

    def matches(self, task: str) -> bool:
        text = task.lower()
        return any(k in text for k in self.keywords)


# Evaluated top to bottom, first match wins
RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        TaskCategory.EMAIL,
        ("mail", "inbox", "spam", "почта", "почту", "письм", "спам"),
    ),
    ClassificationRule(
        TaskCategory.FOOD_ORDER,
        ("food", "delivery", "restaurant", "еда", "еду", "доставк", "заказать"),
    ),
    ClassificationRule(
        TaskCategory.JOB_SEARCH,
        ("job", "vacancy", "vacancies", "resume", "hh.ru", "ваканси", "резюме"),
    ),
)


def classify(task: str, rules: Iterable[ClassificationRule] = RULES) -> TaskCategory:
    for rule in rules:
        if rule.matches(task):
            return rule.category
    return TaskCategory.GENERIC


# ─────────────────────────────────────────────────────────────────────────────
# Strategies
# ─────────────────────────────────────────────────────────────────────────────


class TaskStrategy:
    """
    Generic strategy: no extra instructions, accepts every decision.

    Subclasses set `instructions` and `forbidden_phrases`. A decision whose
    text, value or reasoning contains a forbidden phrase is rejected.
    """

    category: TaskCategory = TaskCategory.GENERIC
    instructions: str = ""
    forbidden_phrases: tuple[str, ...] = ()

    def validate(self, decision: Decision) -> None:
        """Raise ActionError to reject `decision` before it reaches the gate."""
        if not self.forbidden_phrases:
            return
        haystack = " ".join(
            part for part in (decision.text, decision.value, decision.reasoning) if part
        ).lower()
        hit = self._first_hit(haystack)
        if hit is not None:
            log.info(
                "strategy.decision_rejected",
                category=self.category.value,
                action=decision.action,
                phrase=hit,
            )
            raise ActionError(
                f"{self.category.value} strategy does not allow '{hit}'; choose another step",
                action=decision.action,
            )

    def _first_hit(self, haystack: str) -> Optional[str]:
        for phrase in self.forbidden_phrases:
            if phrase in haystack:
                return phrase
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} category={self.category.value}>"


class EmailStrategy(TaskStrategy):
    category = TaskCategory.EMAIL
    instructions = (
        "This is a mailbox task.\n"
        "- Open messages one at a time and read them before acting on them.\n"
        "- Use the mail service's own folders (Inbox, Spam) and its search field.\n"
        "- Never empty the trash or the spam folder as a whole; act on individual messages.\n"
        "- When reporting, list sender and subject of the messages you handled."
    )
    forbidden_phrases = ("empty trash", "empty spam", "очистить папку", "удалить все", "delete all")


class FoodOrderStrategy(TaskStrategy):
    category = TaskCategory.FOOD_ORDER
    instructions = (
        "This is a food ordering task.\n"
        "- Find the restaurant or dish first, then add items to the cart one by one.\n"
        "- Check the cart contents and total before going to checkout.\n"
        "- Do not change the saved delivery address or payment method unless the task says so.\n"
        "- Stop with needs_input if the delivery address or payment details are missing."
    )
    forbidden_phrases = ("subscribe", "подписаться", "save card", "сохранить карту")


class JobSearchStrategy(TaskStrategy):
    category = TaskCategory.JOB_SEARCH
    instructions = (
        "This is a job search task.\n"
        "- Use the site's search and filters (location, salary, experience) rather than browsing.\n"
        "- Open each matching vacancy and compare it with the user's request before applying.\n"
        "- Apply to vacancies one at a time; write a short cover letter when the site asks for one.\n"
        "- Summarise the vacancies you applied to with title, company and link."
    )
    forbidden_phrases = ("apply to all", "откликнуться на все", "delete resume", "удалить резюме")


STRATEGIES: dict[TaskCategory, type[TaskStrategy]] = {
    TaskCategory.GENERIC: TaskStrategy,
    TaskCategory.EMAIL: EmailStrategy,
    TaskCategory.FOOD_ORDER: FoodOrderStrategy,
    TaskCategory.JOB_SEARCH: JobSearchStrategy,
}


def dispatch(category: TaskCategory) -> TaskStrategy:
    return STRATEGIES.get(category, TaskStrategy)()
