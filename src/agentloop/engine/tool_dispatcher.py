"""Tool execution for agent loops: validation, timeout, retry and ordered fan-out."""

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import httpx
from pydantic import BaseModel
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from agentloop.domain.error_sanitizer import sanitize_text
from agentloop.domain.exceptions import TransientToolError
from agentloop.domain.messages import ToolCallRef, new_call_id
from agentloop.domain.outcome import Outcome, OutcomeStatus
from agentloop.domain.policy import RetryPolicy
from agentloop.domain.tool import Tool
from agentloop.domain.tool_call import ToolAttempt, ToolCall, wrap_bare_result
from agentloop.infra.tool_registry import ToolRegistry
from agentloop.telemetry import events
from agentloop.telemetry.telemetry import Telemetry

logger = logging.getLogger(__name__)

TIMEOUT_REASON = "timeout"
DEFAULT_TIMEOUT_MS = 30000
DEFAULT_MAX_CONCURRENCY = 4
QUEUE_POLL_S = 0.05

RETRYABLE_EXCEPTIONS: Tuple[type, ...] = (
    TransientToolError,
    ConnectionError,
    httpx.TransportError,
)

KIND_NOT_FOUND = "not_found"
KIND_VALIDATION = "validation"
KIND_TIMEOUT = "timeout"
KIND_TOOL_ERROR = "tool_error"


def normalize_tool_result(value: Any) -> Outcome:
    """Coerce whatever a tool returned into an Outcome.

    Outcomes pass through, mappings and pydantic models become ``ok(dict)`` and
    any other value is wrapped as ``ok({"result": value})``.
    """

    if isinstance(value, Outcome):
        if value.is_error and isinstance(value.reason, BaseException):
            return Outcome.error(value.describe_reason())
        return value
    if isinstance(value, Mapping):
        return Outcome.ok(dict(value))
    if isinstance(value, BaseModel):
        return Outcome.ok(value.model_dump())
    return Outcome.ok(wrap_bare_result(value))


@dataclass
class _Progress:
    """Execution state shared between a worker and the dispatching thread."""

    started: Optional[float] = None
    count: int = 0
    current_id: Optional[str] = None
    log: List[ToolAttempt] = field(default_factory=list)

    def deadline(self, timeout_s: float) -> Optional[float]:
        return None if self.started is None else self.started + timeout_s

    def attempt_log(self, interrupted: Optional[str] = None) -> Tuple[ToolAttempt, ...]:
        log = list(self.log)
        if interrupted is not None and self.current_id is not None and self.count > len(log):
            log.append(
                ToolAttempt(id=self.current_id, status=OutcomeStatus.ERROR, reason=interrupted)
            )
        return tuple(log)


class ToolDispatcher:
    """
    Executes requested tool calls against a read-only registry.

    Calls in one batch share a pool of ``max_concurrency`` workers and the
    returned ToolCalls follow request order. Each call's timeout counts from
    the moment a worker picks it up. A call that exceeds its timeout is
    recorded as ``error("timeout")``; its thread is abandoned, not stopped, so
    a non-idempotent tool may still complete its side effect after the
    timeout.

    Args:
        registry: Tools the model may call.
        timeout_ms: Default per-call timeout; a tool's own ``timeout_ms`` wins.
        retry_policy: Bounded retry of transient failures.
        max_concurrency: Worker limit for one batch.
        telemetry: Event sink for tool events.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        retry_policy: Optional[RetryPolicy] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        telemetry: Optional[Telemetry] = None,
    ) -> None:
        self.registry = registry
        self.timeout_ms = timeout_ms
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_concurrency = max(1, max_concurrency)
        self._telemetry = telemetry or Telemetry()

    def dispatch(
        self,
        tool_calls: Sequence[ToolCallRef],
        execution_context: Optional[Mapping[str, Any]] = None,
    ) -> List[ToolCall]:
        """
        Executes a batch of tool calls and returns them completed, in request order.

        Args:
            tool_calls: Tool calls requested by one provider response.
            execution_context: Mapping passed to every tool function.

        Returns:
            One ToolCall per request, each with a terminal outcome.
        """
        context = dict(execution_context or {})
        results: List[Optional[ToolCall]] = [None] * len(tool_calls)
        running: Dict[Future, Tuple[int, ToolCallRef, float, _Progress]] = {}
        executor = ThreadPoolExecutor(
            max_workers=self.max_concurrency, thread_name_prefix="agentloop-tool"
        )
        try:
            for index, ref in enumerate(tool_calls):
                self._telemetry.emit(
                    events.TOOL_START, {}, tool=ref.name, tool_call_id=ref.id
                )
                tool, rejection = self._resolve(ref)
                if tool is None:
                    results[index] = self._complete(
                        ref, Outcome.error(rejection[1]), _Progress(), 0.0, rejection[0]
                    )
                    continue
                progress = _Progress()
                timeout_s = (tool.timeout_ms or self.timeout_ms) / 1000.0
                future = executor.submit(self._execute, tool, ref, context, progress)
                running[future] = (index, ref, timeout_s, progress)

            while running:
                done, _ = wait(
                    running, timeout=_next_wakeup(running.values()), return_when=FIRST_COMPLETED
                )
                for future in done:
                    index, ref, _, progress = running.pop(future)
                    outcome = future.result()
                    results[index] = self._complete(
                        ref,
                        outcome,
                        progress,
                        _elapsed_ms(progress.started),
                        None if outcome.is_ok else KIND_TOOL_ERROR,
                    )
                now = time.monotonic()
                for future, (index, ref, timeout_s, progress) in list(running.items()):
                    deadline = progress.deadline(timeout_s)
                    if deadline is None or now < deadline:
                        continue
                    del running[future]
                    logger.warning(
                        "Tool timed out",
                        extra={"tool": ref.name, "tool_call_id": ref.id, "timeout_s": timeout_s},
                    )
                    results[index] = self._complete(
                        ref,
                        Outcome.error(TIMEOUT_REASON),
                        progress,
                        _elapsed_ms(progress.started),
                        KIND_TIMEOUT,
                    )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return [call for call in results if call is not None]

    def _resolve(self, ref: ToolCallRef) -> Tuple[Optional[Tool], Tuple[str, str]]:
        tool = self.registry.get_tool(ref.name)
        if tool is None:
            reason = f"Tool '{ref.name}' not found"
            self._decide(ref, "reject", reason)
            return None, (KIND_NOT_FOUND, reason)
        invalid = tool.validate_arguments(ref.arguments)
        if invalid is not None:
            self._decide(ref, "reject", invalid)
            return None, (KIND_VALIDATION, invalid)
        self._decide(ref, "execute", None)
        return tool, ("", "")

    def _decide(self, ref: ToolCallRef, decision: str, reason: Optional[str]) -> None:
        self._telemetry.emit(
            events.TOOL_DECISION,
            {},
            tool=ref.name,
            tool_call_id=ref.id,
            decision=decision,
            reason=reason,
        )

    def _execute(
        self,
        tool: Tool,
        ref: ToolCallRef,
        execution_context: Dict[str, Any],
        progress: _Progress,
    ) -> Outcome:
        progress.started = time.monotonic()

        def attempt() -> Any:
            attempt_id = ref.id if progress.count == 0 else new_call_id()
            progress.current_id = attempt_id
            progress.count += 1
            try:
                value = tool.function(dict(ref.arguments), dict(execution_context))
            except Exception as exc:
                progress.log.append(
                    ToolAttempt(
                        id=attempt_id,
                        status=OutcomeStatus.ERROR,
                        reason=sanitize_text(str(exc) or exc.__class__.__name__),
                    )
                )
                raise
            if isinstance(value, Outcome) and value.is_error:
                progress.log.append(
                    ToolAttempt(
                        id=attempt_id,
                        status=OutcomeStatus.ERROR,
                        reason=sanitize_text(value.describe_reason()),
                    )
                )
            else:
                progress.log.append(ToolAttempt(id=attempt_id, status=OutcomeStatus.OK))
            return value

        try:
            if self.retry_policy.max_retries == 0:
                value = attempt()
            else:
                retrying = Retrying(
                    stop=stop_after_attempt(self.retry_policy.max_attempts),
                    retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
                    wait=wait_fixed(self.retry_policy.wait_seconds),
                    before_sleep=lambda state: self._on_retry(ref, state),
                    reraise=True,
                )
                value = retrying(attempt)
        except Exception as exc:
            logger.warning(
                "Tool raised",
                exc_info=True,
                extra={"tool": ref.name, "tool_call_id": ref.id, "attempts": progress.count},
            )
            return Outcome.error(str(exc) or exc.__class__.__name__)
        return normalize_tool_result(value)

    def _on_retry(self, ref: ToolCallRef, state: Any) -> None:
        error = state.outcome.exception() if state.outcome is not None else None
        logger.info(
            "Retrying tool",
            extra={"tool": ref.name, "tool_call_id": ref.id, "attempt": state.attempt_number},
        )
        self._telemetry.emit(
            events.TOOL_RETRY,
            {"attempt": state.attempt_number},
            tool=ref.name,
            tool_call_id=ref.id,
            reason=sanitize_text(str(error)) if error is not None else None,
        )

    def _complete(
        self,
        ref: ToolCallRef,
        outcome: Outcome,
        progress: _Progress,
        duration_ms: float,
        error_kind: Optional[str],
    ) -> ToolCall:
        if error_kind == KIND_TIMEOUT:
            attempts = max(1, progress.count)
            attempt_log = progress.attempt_log(interrupted=TIMEOUT_REASON)
        else:
            attempts = progress.count
            attempt_log = progress.attempt_log()
        call = ToolCall.from_ref(
            ref,
            outcome,
            attempts=attempts,
            attempt_log=attempt_log,
            duration_ms=duration_ms,
            error_kind=error_kind,
        )
        if outcome.is_error:
            self._telemetry.emit(
                events.TOOL_ERROR,
                {"duration_ms": duration_ms, "attempts": attempts},
                tool=ref.name,
                tool_call_id=ref.id,
                kind=error_kind,
                reason=sanitize_text(outcome.describe_reason()),
            )
        self._telemetry.emit(
            events.TOOL_COMPLETE,
            {"duration_ms": duration_ms, "attempts": attempts},
            tool=ref.name,
            tool_call_id=ref.id,
            status="ok" if outcome.is_ok else "error",
        )
        return call


def _elapsed_ms(started: Optional[float]) -> float:
    if started is None:
        return 0.0
    return max(0.0, (time.monotonic() - started) * 1000.0)


def _next_wakeup(running: Iterable[Tuple[int, ToolCallRef, float, _Progress]]) -> float:
    """Seconds until the nearest started call's deadline, capped at the queue poll."""

    now = time.monotonic()
    wakeup = QUEUE_POLL_S
    for _, _, timeout_s, progress in running:
        deadline = progress.deadline(timeout_s)
        if deadline is not None:
            wakeup = min(wakeup, deadline - now)
    return max(0.0, wakeup)
