"""Hook pipeline: optional extension points around each iteration.

A hook is any object implementing a subset of ``on_iteration_start``,
``prepare_messages``, ``prepare_tool_results``, ``prepare_context`` and
``on_iteration_complete``. Each callback receives a deep copy of its frozen
input model and returns ``Outcome.ok(value)`` or ``Outcome.error(reason)``.
In-place changes to that copy never reach the runtime's context. A bare return value
counts as ok and returning None leaves the input unchanged. Callbacks are
found by capability check, so hook objects need no base class.
"""

import logging
from typing import Any, Callable, List, Optional, Sequence, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict

from agentloop.domain.context import Context
from agentloop.domain.exceptions import AgentLoopError, HookError, MaxIterationsExceededError
from agentloop.domain.iteration import Iteration
from agentloop.domain.messages import Message
from agentloop.domain.outcome import Outcome
from agentloop.domain.token_budget import TokenBudget
from agentloop.domain.token_usage import TokenUsage
from agentloop.engine.token_limits import TokenLimits
from agentloop.processors.base import ResultEntry
from agentloop.telemetry import events
from agentloop.telemetry.telemetry import Telemetry

logger = logging.getLogger(__name__)

ON_ITERATION_START = "on_iteration_start"
PREPARE_MESSAGES = "prepare_messages"
PREPARE_TOOL_RESULTS = "prepare_tool_results"
PREPARE_CONTEXT = "prepare_context"
ON_ITERATION_COMPLETE = "on_iteration_complete"

HOOK_POINTS = (
    ON_ITERATION_START,
    PREPARE_MESSAGES,
    PREPARE_TOOL_RESULTS,
    PREPARE_CONTEXT,
    ON_ITERATION_COMPLETE,
)


class _HookInput(BaseModel):
    agent: str
    client: str
    context: Context

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


class IterationStartInput(_HookInput):
    """Input of ``on_iteration_start``."""

    iteration_number: int
    max_iterations: int
    budget: Optional[TokenBudget] = None


class MessagesInput(_HookInput):
    """Input of ``prepare_messages``."""

    iteration_number: int
    messages: List[Message]


class ToolResultsInput(_HookInput):
    """Input of ``prepare_tool_results``; entries are ``(tool_name, outcome)``."""

    iteration_number: int
    results: List[Tuple[str, Outcome]]


class ContextInput(_HookInput):
    """Input of ``prepare_context``."""

    iteration_number: int


class IterationCompleteInput(_HookInput):
    """Input of ``on_iteration_complete``."""

    iteration: Iteration
    token_usage: Optional[TokenUsage] = None


class DefaultHooks:
    """Behaviour used when no hook implements a callback.

    ``on_iteration_start`` stops the loop once the iteration number passes
    ``max_iterations``. ``on_iteration_complete`` emits a token limit warning
    when the client's context window is nearly used. Custom hooks keep this
    behaviour by delegating to an instance.

    Args:
        token_limits: Context window sizes per client.
        telemetry: Event sink for token limit warnings.
    """

    def __init__(
        self, token_limits: Optional[TokenLimits] = None, telemetry: Optional[Telemetry] = None
    ) -> None:
        self._token_limits = token_limits or TokenLimits()
        self._telemetry = telemetry or Telemetry()

    def on_iteration_start(self, hook_input: IterationStartInput) -> Outcome:
        if hook_input.iteration_number > hook_input.max_iterations:
            return Outcome.error(
                MaxIterationsExceededError(
                    f"Max iterations ({hook_input.max_iterations}) exceeded",
                    details={
                        "max": hook_input.max_iterations,
                        "current": hook_input.iteration_number,
                    },
                    context=hook_input.context,
                )
            )
        return Outcome.ok()

    def on_iteration_complete(self, hook_input: IterationCompleteInput) -> Outcome:
        if hook_input.token_usage is not None:
            cumulative = hook_input.context.token_usage.total_tokens
            warning = self._token_limits.check_limit(cumulative, hook_input.client)
            if warning is not None:
                logger.warning(
                    "Token usage approaching client limit",
                    extra={
                        "agent": hook_input.agent,
                        "client": hook_input.client,
                        "limit": warning.limit,
                        "cumulative_tokens": cumulative,
                    },
                )
                self._telemetry.emit(
                    events.TOKEN_LIMIT_WARNING,
                    {"cumulative_tokens": cumulative},
                    limit=warning.limit,
                    threshold_percent=int(warning.threshold * 100),
                )
        return Outcome.ok()


T = TypeVar("T")


class HookPipeline:
    """Runs the configured hooks at each interception point.

    Hooks run in the order given, each one's output feeding the next. A failed
    ``on_iteration_start`` stops the loop. Every other callback degrades to a
    no-op on failure: the value it received is passed on unchanged, a warning
    is logged and ``agent.hook.error`` is emitted.

    Args:
        hooks: Hook objects implementing any subset of the callbacks.
        defaults: Fallback implementation for the lifecycle callbacks.
        telemetry: Event sink for hook spans.
    """

    def __init__(
        self,
        hooks: Sequence[Any] = (),
        defaults: Optional[DefaultHooks] = None,
        telemetry: Optional[Telemetry] = None,
    ) -> None:
        self._hooks = list(hooks)
        self._defaults = defaults or DefaultHooks(telemetry=telemetry)
        self._telemetry = telemetry or Telemetry()

    def implementations(self, point: str) -> List[Tuple[str, Callable[[Any], Any]]]:
        """Callbacks for ``point`` in run order, falling back to the defaults."""

        found = []
        for hook in self._hooks:
            callback = getattr(hook, point, None)
            if callable(callback):
                found.append((_hook_name(hook), callback))
        if found:
            return found
        default = getattr(self._defaults, point, None)
        if callable(default):
            return [(_hook_name(self._defaults), default)]
        return []

    def on_iteration_start(self, hook_input: IterationStartInput) -> Outcome:
        """Return ``ok(context)`` to proceed or ``error(AgentLoopError)`` to stop."""

        current = hook_input
        for name, callback in self.implementations(ON_ITERATION_START):
            outcome = self._invoke(ON_ITERATION_START, name, callback, current)
            if outcome.is_error:
                error = _stop_error(outcome.reason, current.context)
                self._telemetry.emit(
                    events.HOOK_ERROR,
                    {},
                    hook=name,
                    hook_point=ON_ITERATION_START,
                    reason=error.message,
                    iteration=current.iteration_number,
                    fatal=True,
                )
                return Outcome.error(error)
            context = current.context if outcome.value is None else outcome.value
            try:
                _valid_working_context(context, current.iteration_number - 1)
            except (TypeError, ValueError) as exc:
                return Outcome.error(
                    HookError(
                        f"{name}.{ON_ITERATION_START} returned an invalid context: {exc}",
                        details={"hook_point": ON_ITERATION_START},
                        context=current.context,
                    )
                )
            current = current.model_copy(update={"context": context})
        return Outcome.ok(current.context)

    def prepare_messages(self, hook_input: MessagesInput) -> List[Message]:
        return self._transform(
            PREPARE_MESSAGES, hook_input, "messages", _valid_messages
        ).messages

    def prepare_tool_results(self, hook_input: ToolResultsInput) -> List[ResultEntry]:
        expected = len(hook_input.results)
        return self._transform(
            PREPARE_TOOL_RESULTS,
            hook_input,
            "results",
            lambda value: _valid_results(value, expected),
        ).results

    def prepare_context(self, hook_input: ContextInput) -> Context:
        number = hook_input.iteration_number
        return self._transform(
            PREPARE_CONTEXT,
            hook_input,
            "context",
            lambda value: _valid_working_context(value, number, require_last=True),
        ).context

    def on_iteration_complete(self, hook_input: IterationCompleteInput) -> Context:
        number = hook_input.iteration.number
        return self._transform(
            ON_ITERATION_COMPLETE,
            hook_input,
            "context",
            lambda value: _valid_working_context(value, number),
        ).context

    def _transform(
        self,
        point: str,
        hook_input: T,
        field: str,
        coerce: Callable[[Any], Any],
    ) -> T:
        current = hook_input
        for name, callback in self.implementations(point):
            outcome = self._invoke(point, name, callback, current)
            if outcome.is_ok and outcome.value is None:
                continue
            if outcome.is_ok:
                try:
                    value = coerce(outcome.value)
                except (TypeError, ValueError) as exc:
                    outcome = Outcome.error(str(exc))
                else:
                    current = current.model_copy(update={field: value})
                    continue
            self._fallback(point, name, outcome.reason, current)
        return current

    def _invoke(self, point: str, name: str, callback: Callable[[Any], Any], hook_input: Any) -> Outcome:
        metadata = {"hook": name, "hook_point": point}
        self._telemetry.emit(events.HOOK_START, {}, **metadata)
        try:
            returned = callback(hook_input.model_copy(deep=True))
        except Exception as exc:
            logger.exception("Hook raised", extra=metadata)
            self._telemetry.emit(events.HOOK_STOP, {}, status="exception", **metadata)
            return Outcome.error(exc)
        outcome = returned if isinstance(returned, Outcome) else Outcome.ok(returned)
        self._telemetry.emit(
            events.HOOK_STOP, {}, status="ok" if outcome.is_ok else "error", **metadata
        )
        return outcome

    def _fallback(self, point: str, name: str, reason: Any, hook_input: Any) -> None:
        text = Outcome.error(reason).describe_reason()
        logger.warning(
            "Hook %s.%s failed, continuing with unmodified input: %s",
            name,
            point,
            text,
            extra={"hook": name, "hook_point": point},
        )
        self._telemetry.emit(
            events.HOOK_ERROR,
            {},
            hook=name,
            hook_point=point,
            reason=text,
            iteration=getattr(hook_input, "iteration_number", None),
        )


def _hook_name(hook: Any) -> str:
    return hook.__name__ if isinstance(hook, type) else hook.__class__.__name__


def _stop_error(reason: Any, context: Context) -> AgentLoopError:
    if isinstance(reason, AgentLoopError):
        if reason.context is None:
            reason.with_context(context)
        return reason
    text = Outcome.error(reason).describe_reason() or "Hook stopped the loop"
    error = HookError(text, details={"hook_point": ON_ITERATION_START}, context=context)
    if isinstance(reason, BaseException):
        error.__cause__ = reason
    return error


def _valid_messages(value: Any) -> List[Message]:
    if not isinstance(value, (list, tuple)) or not all(isinstance(m, Message) for m in value):
        raise TypeError("prepare_messages must return a sequence of Message")
    return list(value)


def _valid_results(value: Any, expected: int) -> List[ResultEntry]:
    if not isinstance(value, (list, tuple)):
        raise TypeError("prepare_tool_results must return a sequence of (name, Outcome)")
    entries: List[ResultEntry] = []
    for entry in value:
        if (
            not isinstance(entry, tuple)
            or len(entry) != 2
            or not isinstance(entry[1], Outcome)
        ):
            raise TypeError("prepare_tool_results must return a sequence of (name, Outcome)")
        entries.append((str(entry[0]), entry[1]))
    if len(entries) != expected:
        raise ValueError(
            f"prepare_tool_results returned {len(entries)} results, expected {expected}"
        )
    return entries


def _valid_context(value: Any) -> Context:
    if not isinstance(value, Context):
        raise TypeError(f"expected Context, got {type(value).__name__}")
    return value


def _valid_working_context(value: Any, number: int, require_last: bool = False) -> Context:
    context = _valid_context(value)
    if context.current_iteration != number:
        raise ValueError(
            f"context must stay at iteration {number}, got {context.current_iteration}"
        )
    last = context.last_iteration
    if require_last and (last is None or last.number != number):
        raise ValueError(f"context must keep iteration {number} as its last iteration")
    return context
