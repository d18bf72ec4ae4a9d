"""
agent/orchestrator.py — Control Loop

Drives one task to a terminal state:

    Sensing → Deciding → Validating → Executing → Recording → (Sensing ...)

Terminal outcomes are returned as a TaskResult, never raised:
    COMPLETED    the oracle said the task is done and loop detection agreed
    NEEDS_INPUT  the oracle cannot go on without the human
    FAILED       iteration limit, circuit breaker, a dead browser, or an
                 unexpected error inside the loop (INTERNAL_ERROR)
    CANCELLED    the deadline passed or cancel() was called

Only one Orchestrator.execute() may run against a browser at a time; nothing
enforces this.

Usage:
    orchestrator = Orchestrator.from_settings(browser, oracle, gate, settings)
    result = await orchestrator.execute("Find the cheapest flight to Berlin")
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Iterable, Optional

from webpilot.agent.classifier import TaskStrategy, classify, dispatch
from webpilot.agent.context_builder import ContextBuilder
from webpilot.agent.decision import ActionKind, Decision
from webpilot.agent.executor import ActionExecutor
from webpilot.agent.history import (
    DEFAULT_COMPLETION_MARKERS,
    LOOP_DETECTED_MARKER,
    SKIPPED_FINISH_MARKER,
    ActionHistory,
    cancellation_entry,
    error_entry,
    sensing_entry,
)
from webpilot.agent.parser import parse_decision
from webpilot.agent.retry import RetryPolicy, adaptation_note, retry_on_timeout
from webpilot.agent.state import AgentRunState, FailureReason, TaskResult, TaskStatus
from webpilot.brain.oracle import DecisionOracle
from webpilot.browser.base import BrowserEnvironment
from webpilot.browser.types import Snapshot
from webpilot.exceptions import (
    ActionError,
    CircuitBreakerError,
    DestructiveActionCancelled,
    IterationLimitError,
    OracleError,
    SensorError,
    SensorTimeoutError,
    SensorUnavailableError,
    TaskCancelledError,
    WebPilotError,
)
from webpilot.observability.logger import bind_task, clear_task, get_logger
from webpilot.safety.gate import SafetyGate

log = get_logger(__name__)

# Checked in order, so subclasses come before their bases
_FAILURE_REASONS: list[tuple[type[WebPilotError], TaskStatus, FailureReason]] = [
    (CircuitBreakerError, TaskStatus.FAILED, FailureReason.CIRCUIT_BREAKER),
    (IterationLimitError, TaskStatus.FAILED, FailureReason.ITERATION_LIMIT),
    (SensorUnavailableError, TaskStatus.FAILED, FailureReason.SENSOR_UNAVAILABLE),
    (SensorError, TaskStatus.FAILED, FailureReason.SENSOR_FAILURE),
]


class Orchestrator:

    def __init__(
        self,
        browser: BrowserEnvironment,
        oracle: DecisionOracle,
        gate: SafetyGate,
        executor: Optional[ActionExecutor] = None,
        context_builder: Optional[ContextBuilder] = None,
        policy: RetryPolicy = RetryPolicy(),
        max_iterations: int = 50,
        history_window: int = 7,
        loop_detection_window: int = 5,
        loop_detection_threshold: int = 3,
        completion_markers: Iterable[str] = DEFAULT_COMPLETION_MARKERS,
        step_delay: float = 1.0,
        cancel_delay: float = 1.0,
        sensor_attempts: int = 3,
        sensor_pacing: float = 1.0,
        task_timeout: float = 900.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._browser = browser
        self._oracle = oracle
        self._gate = gate
        self._executor = executor or ActionExecutor(browser, sleep=sleep)
        self._context = context_builder or ContextBuilder()
        self._policy = policy
        self._max_iterations = max_iterations
        self._history_window = history_window
        self._loop_window = loop_detection_window
        self._loop_threshold = loop_detection_threshold
        self._completion_markers = tuple(completion_markers)
        self._step_delay = step_delay
        self._cancel_delay = cancel_delay
        self._sensor_attempts = sensor_attempts
        self._sensor_pacing = sensor_pacing
        self._task_timeout = task_timeout
        self._sleep = sleep
        self._cancel_event = asyncio.Event()

    @classmethod
    def from_settings(
        cls,
        browser: BrowserEnvironment,
        oracle: DecisionOracle,
        gate: SafetyGate,
        settings,
    ) -> "Orchestrator":
        agent = settings.agent
        return cls(
            browser=browser,
            oracle=oracle,
            gate=gate,
            executor=ActionExecutor.from_settings(browser, settings),
            policy=RetryPolicy.from_settings(settings),
            max_iterations=agent.max_iterations,
            history_window=agent.history_window,
            loop_detection_window=agent.loop_detection_window,
            loop_detection_threshold=agent.loop_detection_threshold,
            completion_markers=agent.completion_markers,
            step_delay=agent.step_delay_seconds,
            cancel_delay=agent.cancel_delay_seconds,
            sensor_attempts=settings.retry.sensor_attempts,
            sensor_pacing=settings.retry.sensor_pacing_seconds,
            task_timeout=agent.task_timeout_seconds,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────────────────

    def cancel(self) -> None:
        """Stop the running task at once; execute() returns CANCELLED."""
        self._cancel_event.set()

    async def execute(
        self,
        task: str,
        timeout: Optional[float] = None,
        history: Optional[Iterable[str]] = None,
    ) -> TaskResult:
        """
        Run `task` until a terminal state or until `timeout` seconds pass
        (task_timeout when None). `history` seeds the action history, e.g.
        to resume a task after the human answered a needs-input question.
        """
        self._cancel_event.clear()
        category = classify(task)
        strategy = dispatch(category)

        state = AgentRunState(
            task=task,
            category=category.value,
            history=ActionHistory(self._completion_markers),
        )
        for entry in history or ():
            state.history.append(entry)

        limit = self._task_timeout if timeout is None else timeout
        bind_task(state.id, category.value)
        log.info("orchestrator.task_start", task=task[:120], category=category.value, timeout=limit)

        run = asyncio.ensure_future(self._run(state, strategy))
        stop = asyncio.ensure_future(self._cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {run, stop}, timeout=limit, return_when=asyncio.FIRST_COMPLETED
            )
            if run in done:
                result = self._result_of(run, state)
            else:
                await self._abort(run)
                if stop in done:
                    err = TaskCancelledError("Task cancelled by caller")
                    reason = FailureReason.CANCELLED
                else:
                    err = TaskCancelledError(f"Task exceeded its deadline of {limit:.0f}s")
                    reason = FailureReason.DEADLINE_EXCEEDED
                result = TaskResult.from_state(
                    state, TaskStatus.CANCELLED, reason=reason, error=str(err)
                )
        finally:
            stop.cancel()
            if not run.done():
                await self._abort(run)
            clear_task()

        log.info(
            "orchestrator.task_end",
            task_id=state.id,
            status=result.status.value,
            reason=result.reason.value if result.reason else None,
            iterations=result.iterations,
            duration_ms=result.duration_ms,
        )
        return result

    # ─────────────────────────────────────────────────────────────────────────
    # Loop
    # ─────────────────────────────────────────────────────────────────────────

    async def _run(self, state: AgentRunState, strategy: TaskStrategy) -> TaskResult:
        while state.iteration < self._max_iterations:
            state.iteration += 1
            log.info(
                "orchestrator.iteration_start",
                iteration=state.iteration,
                error_count=state.error_count,
            )
            result = await self._iterate(state, strategy)
            if result is not None:
                return result

        raise IterationLimitError(
            f"Task not finished after {self._max_iterations} iterations"
        )

    async def _iterate(self, state: AgentRunState, strategy: TaskStrategy) -> Optional[TaskResult]:
        """One pass through the loop. Returns a result only on COMPLETED or NEEDS_INPUT."""
        # ── Sense ─────────────────────────────────────────────────────────────
        try:
            snapshot = await self._sense()
        except SensorTimeoutError as e:
            log.warning("orchestrator.sensing_failed", error=str(e))
            state.history.append(sensing_entry(str(e)))
            return None

        # ── Decide ────────────────────────────────────────────────────────────
        context = self._context.build(snapshot)
        try:
            raw = await self._oracle.decide(
                state.task,
                context,
                state.history.recent(self._history_window),
                strategy.instructions,
            )
        except OracleError as e:
            await self._record_failure(state, "decide", e)
            return None

        decision = parse_decision(raw)
        log.info(
            "orchestrator.decision",
            action=decision.action,
            reasoning=decision.reasoning[:200],
            is_complete=decision.is_complete,
            needs_input=decision.needs_input,
        )

        # ── Validate: completion guard ────────────────────────────────────────
        if decision.is_complete:
            if state.history.completion_loop_detected(self._loop_window, self._loop_threshold):
                log.warning(
                    "orchestrator.completion_loop_detected",
                    signals=state.history.count_completion_signals(self._loop_window),
                    window=self._loop_window,
                )
                decision.is_complete = False
                state.history.append(LOOP_DETECTED_MARKER)
            else:
                return TaskResult.from_state(
                    state, TaskStatus.COMPLETED, summary=decision.summary
                )

        # ── Validate: needs input ─────────────────────────────────────────────
        if decision.needs_input:
            return TaskResult.from_state(
                state, TaskStatus.NEEDS_INPUT, input_prompt=decision.input_prompt
            )

        # ── Validate: dead finish ─────────────────────────────────────────────
        if decision.kind == ActionKind.COMPLETE:
            log.info("orchestrator.finish_skipped")
            state.history.append(SKIPPED_FINISH_MARKER)
            return None

        # ── Strategy + safety gate ────────────────────────────────────────────
        try:
            strategy.validate(decision)
        except ActionError as e:
            await self._record_failure(state, decision.action, e)
            return None

        try:
            await self._gate.enforce(decision, ContextBuilder.summary(snapshot))
        except DestructiveActionCancelled as e:
            log.info("orchestrator.action_cancelled", action=e.action, description=e.description)
            state.history.append(cancellation_entry(decision.action))
            await self._sleep(self._cancel_delay)
            return None

        # ── Execute + record ──────────────────────────────────────────────────
        try:
            await self._executor.execute(decision)
        except ActionError as e:
            await self._record_failure(state, decision.action, e)
            return None

        self._record_success(state, decision)
        await self._sleep(self._step_delay)
        return None

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────

    async def _sense(self) -> Snapshot:
        """
        Quick snapshot, falling back to a full snapshot with local retries.

        Raises:
            SensorTimeoutError:     full snapshot timed out on every attempt.
            SensorUnavailableError: the browser is gone.
            SensorError:            the full snapshot failed for another reason.
        """
        try:
            return await self._browser.quick_snapshot()
        except SensorUnavailableError:
            raise
        except SensorError as e:
            log.info("orchestrator.quick_snapshot_failed", error=str(e))

        return await retry_on_timeout(
            self._browser.full_snapshot,
            attempts=self._sensor_attempts,
            pacing=self._sensor_pacing,
            sleep=self._sleep,
            label="full_snapshot",
        )

    def _record_success(self, state: AgentRunState, decision: Decision) -> None:
        state.record_success()
        state.history.append(decision.history_line())

    async def _record_failure(self, state: AgentRunState, action: str, error: Exception) -> None:
        count = state.record_failure()
        state.history.append(error_entry(action, str(error), adaptation_note(error)))
        log.warning(
            "orchestrator.step_failed",
            action=action,
            error=str(error),
            error_type=type(error).__name__,
            error_count=count,
        )
        if self._policy.tripped(count):
            raise CircuitBreakerError(count, self._policy.max_errors) from error
        await self._sleep(self._policy.delay(count))

    def _result_of(self, run: asyncio.Future, state: AgentRunState) -> TaskResult:
        try:
            return run.result()
        except WebPilotError as e:
            for exc_type, status, reason in _FAILURE_REASONS:
                if isinstance(e, exc_type):
                    return TaskResult.from_state(state, status, reason=reason, error=str(e))
            return self._internal_failure(state, e)
        except Exception as e:
            return self._internal_failure(state, e)

    @staticmethod
    def _internal_failure(state: AgentRunState, error: Exception) -> TaskResult:
        log.error(
            "orchestrator.internal_error",
            error=str(error),
            error_type=type(error).__name__,
            exc_info=error,
        )
        return TaskResult.from_state(
            state,
            TaskStatus.FAILED,
            reason=FailureReason.INTERNAL_ERROR,
            error=f"{type(error).__name__}: {error}",
        )

    @staticmethod
    async def _abort(run: asyncio.Future) -> None:
        run.cancel()
        try:
            await run
        except asyncio.CancelledError:
            pass
        except Exception as e:  # the task failed while being cancelled
            log.debug("orchestrator.abort_error", error=str(e))
