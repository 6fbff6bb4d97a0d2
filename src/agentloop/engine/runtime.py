"""The agent runtime loop: render, call, dispatch tools, compact, repeat.

One invocation runs ``Start -> Rendering -> Calling -> (ToolDispatch ->
Compacting)* -> Completed | Failed``. Every path out of ``call`` returns an
Outcome and every stream ends with exactly one DONE or ERROR event.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    Generator,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
)

from pydantic import ValidationError as PydanticValidationError

from agentloop.config import AgentConfig
from agentloop.domain.context import Context
from agentloop.domain.error_sanitizer import build_exception_details, sanitize_text
from agentloop.domain.exceptions import (
    AgentLoopError,
    BudgetExceededError,
    ConfigurationError,
    OutputParseError,
    ToolExecutionError,
    ToolTimeoutError,
    ValidationError,
)
from agentloop.domain.iteration import USAGE_KEY, Iteration, utc_now
from agentloop.domain.messages import Message
from agentloop.domain.outcome import Outcome
from agentloop.domain.policy import ErrorPolicy
from agentloop.domain.result import Result
from agentloop.domain.tool_call import ToolCall, wrap_bare_result
from agentloop.engine.budget import BudgetStatus, TokenBudgetMonitor
from agentloop.engine.disclosure import ProgressiveDisclosure
from agentloop.engine.hooks import (
    ContextInput,
    DefaultHooks,
    HookPipeline,
    IterationCompleteInput,
    IterationStartInput,
    MessagesInput,
    ToolResultsInput,
)
from agentloop.engine.token_limits import TokenLimits
from agentloop.engine.tool_dispatcher import (
    KIND_NOT_FOUND,
    KIND_TIMEOUT,
    KIND_VALIDATION,
    ToolDispatcher,
)
from agentloop.llm.provider_error_mapper import map_provider_error, provider_error_from_reason
from agentloop.llm.provider_response import ProviderResponse, StreamChunk
from agentloop.processors.base import ResultEntry
from agentloop.telemetry import events
from agentloop.telemetry.telemetry import Telemetry

if TYPE_CHECKING:
    from agentloop.core.agent import Agent

logger = logging.getLogger(__name__)

INPUT_KEYS = ("message", "input", "prompt")


class StreamEventType(str, Enum):
    CHUNK = "chunk"
    ITERATION = "iteration"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class StreamEvent:
    """One item of a streaming invocation.

    CHUNK carries a partial provider output, ITERATION marks a sealed tool
    iteration, and the stream ends with a single DONE (carrying the Result) or
    ERROR (carrying the typed error).
    """

    type: StreamEventType
    iteration: Optional[int] = None
    chunk: Optional[StreamChunk] = None
    result: Optional[Result] = None
    error: Optional[AgentLoopError] = None

    @property
    def terminal(self) -> bool:
        return self.type in (StreamEventType.DONE, StreamEventType.ERROR)


@dataclass
class _Invocation:
    arguments: Dict[str, Any]
    config: AgentConfig
    provider_options: Dict[str, Any]
    telemetry: Telemetry
    hooks: HookPipeline
    dispatcher: ToolDispatcher
    disclosure: ProgressiveDisclosure
    monitor: TokenBudgetMonitor
    context: Context
    started_at: datetime = field(default_factory=utc_now)
    started: float = field(default_factory=time.perf_counter)


def format_tool_result(outcome: Outcome) -> str:
    """Render a tool outcome as the JSON content of a ``tool`` message."""

    if outcome.is_error:
        payload: Any = {"error": outcome.describe_reason()}
    elif isinstance(outcome.value, Mapping):
        payload = dict(outcome.value)
    else:
        payload = wrap_bare_result(outcome.value)
    return json.dumps(payload, default=str)


class AgentRuntime:
    """
    Runs invocations of one agent.

    The runtime holds no per-invocation state; each ``call`` or ``stream``
    builds a fresh Context, hook pipeline, dispatcher and budget monitor.
    Keyword options naming an ``AgentConfig`` field override the agent's
    configuration for that invocation; any other option is passed to the
    provider.

    Args:
        agent: The agent definition to run.
    """

    def __init__(self, agent: "Agent") -> None:
        self.agent = agent

    def call(self, arguments: Optional[Mapping[str, Any]] = None, **options: Any) -> Outcome:
        """
        Runs the loop to completion.

        Args:
            arguments: Invocation arguments rendered into the instruction.
            options: Per-invocation configuration overrides and provider options.

        Returns:
            ``Outcome.ok(Result)`` or ``Outcome.error(AgentLoopError)``; the
            error carries the context accumulated before the failure.
        """
        telemetry = self._telemetry()
        try:
            with telemetry.span(events.CALL) as scope:
                invocation = self._start(arguments, options, telemetry)
                result = _run_to_end(self._loop(invocation, streaming=False))
                scope.measurements.update(_result_measurements(result))
        except AgentLoopError as exc:
            return Outcome.error(exc)
        return Outcome.ok(result)

    def call_or_raise(self, arguments: Optional[Mapping[str, Any]] = None, **options: Any) -> Result:
        """
        Runs the loop and returns the Result.

        Raises:
            AgentLoopError: The typed error of a failed invocation.
        """
        return self.call(arguments, **options).unwrap()

    def stream(
        self, arguments: Optional[Mapping[str, Any]] = None, **options: Any
    ) -> Iterator[StreamEvent]:
        """
        Runs the loop lazily, yielding provider chunks as they arrive.

        Closing the iterator early closes the provider stream and emits a
        cancelled stop event; no further provider calls or tool dispatches
        happen.
        """
        return self._stream(self._telemetry(), arguments, options)

    def _stream(
        self,
        telemetry: Telemetry,
        arguments: Optional[Mapping[str, Any]],
        options: Dict[str, Any],
    ) -> Iterator[StreamEvent]:
        try:
            with telemetry.span(events.STREAM) as scope:
                invocation = self._start(arguments, options, telemetry)
                result = yield from self._loop(invocation, streaming=True)
                scope.measurements.update(_result_measurements(result))
        except AgentLoopError as exc:
            yield StreamEvent(StreamEventType.ERROR, error=exc)
            return
        yield StreamEvent(StreamEventType.DONE, result=result)

    def _telemetry(self) -> Telemetry:
        return Telemetry(
            self.agent.observer,
            {
                "agent": self.agent.name,
                "provider": self.agent.provider_name,
                "client": self.agent.client,
            },
        )

    def _start(
        self,
        arguments: Optional[Mapping[str, Any]],
        options: Mapping[str, Any],
        telemetry: Telemetry,
    ) -> _Invocation:
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, Mapping):
            raise ValidationError(
                f"arguments must be a mapping, got {type(arguments).__name__}"
            )
        config = self._resolve_config(options)
        provider_options = dict(self.agent.client_options)
        provider_options.update(
            {key: value for key, value in options.items() if key not in AgentConfig.model_fields}
        )
        defaults = DefaultHooks(TokenLimits.from_mapping(config.client_token_limits), telemetry)
        return _Invocation(
            arguments=dict(arguments),
            config=config,
            provider_options=provider_options,
            telemetry=telemetry,
            hooks=HookPipeline(self.agent.hooks, defaults, telemetry),
            dispatcher=ToolDispatcher(
                self.agent.tools,
                timeout_ms=config.tool_timeout_ms,
                retry_policy=config.retry_policy(),
                max_concurrency=config.max_tool_concurrency,
                telemetry=telemetry,
            ),
            disclosure=ProgressiveDisclosure(config.disclosure_options(), telemetry),
            monitor=TokenBudgetMonitor(config.token_budget_config(), telemetry),
            context=Context.new(agent=self.agent.name, input=dict(arguments)),
        )

    def _resolve_config(self, options: Mapping[str, Any]) -> AgentConfig:
        overrides = {key: value for key, value in options.items() if key in AgentConfig.model_fields}
        if not overrides:
            return self.agent.config
        values = self.agent.config.model_dump()
        values.update(overrides)
        try:
            return AgentConfig.model_validate(values)
        except PydanticValidationError as exc:
            raise ConfigurationError(
                "Invalid invocation options",
                details={"errors": exc.errors(include_url=False, include_context=False)},
            ) from exc

    def _loop(
        self, invocation: _Invocation, streaming: bool
    ) -> Generator[StreamEvent, None, Result]:
        log_extra = {"agent": self.agent.name, "client": self.agent.client}
        try:
            while True:
                result = yield from self._iteration(invocation, streaming)
                if result is not None:
                    logger.info(
                        "Agent invocation completed",
                        extra={**log_extra, "iterations": invocation.context.current_iteration},
                    )
                    return result
        except AgentLoopError as exc:
            if exc.context is None:
                exc.with_context(invocation.context)
            logger.warning(
                "Agent invocation failed: %s",
                exc.message,
                extra={**log_extra, "reason": exc.reason},
            )
            raise
        except Exception as exc:
            logger.exception("Agent invocation crashed", extra=log_extra)
            raise AgentLoopError(
                f"Unexpected runtime failure: {sanitize_text(str(exc))}",
                details=build_exception_details(exc),
                context=invocation.context,
            ) from exc

    def _iteration(
        self, invocation: _Invocation, streaming: bool
    ) -> Generator[StreamEvent, None, Optional[Result]]:
        agent = self.agent
        number = invocation.context.next_iteration_number
        started = invocation.hooks.on_iteration_start(
            IterationStartInput(
                agent=agent.name,
                client=agent.client,
                context=invocation.context,
                iteration_number=number,
                max_iterations=invocation.config.max_iterations,
                budget=invocation.monitor.budget,
            )
        )
        if started.is_error:
            raise started.reason
        invocation.context = started.value

        started_at = utc_now()
        clock = time.perf_counter()
        invocation.telemetry.emit(events.ITERATION_START, {}, iteration=number)

        prompt = agent.renderer.render(
            agent.instruction, invocation.arguments, invocation.context, agent.schema
        )
        view = invocation.disclosure.compact(invocation.context)
        messages = invocation.hooks.prepare_messages(
            MessagesInput(
                agent=agent.name,
                client=agent.client,
                context=view,
                iteration_number=number,
                messages=_candidate_messages(prompt, invocation.arguments, view),
            )
        )
        response = yield from self._call_provider(
            invocation, number, prompt, view, messages, streaming
        )

        iteration = Iteration(
            number=number,
            messages=(Message.assistant(response.content, response.tool_calls),),
            started_at=started_at,
            metadata=_response_metadata(response),
        )
        if not response.wants_tools:
            invocation.context = invocation.context.append_iteration(iteration).seal_current()
            self._complete_iteration(invocation, response, clock)
            self._enforce_budget(invocation, number)
            return self._build_result(invocation, response)

        tool_calls = invocation.dispatcher.dispatch(
            response.tool_calls, self._execution_context(invocation, number)
        )
        entries = invocation.disclosure.process_tool_results(
            [(call.name, call.result) for call in tool_calls]
        )
        entries = invocation.hooks.prepare_tool_results(
            ToolResultsInput(
                agent=agent.name,
                client=agent.client,
                context=invocation.context,
                iteration_number=number,
                results=entries,
            )
        )
        iteration = iteration.with_tool_calls(tuple(tool_calls)).with_messages(
            tuple(
                Message.tool(call.id, call.name, format_tool_result(outcome))
                for call, (_, outcome) in zip(tool_calls, entries)
            )
        )

        failure = _halting_failure(invocation.config.on_error, tool_calls, entries)
        if failure is not None:
            invocation.context = invocation.context.append_iteration(iteration).seal_current()
            raise failure.with_context(invocation.context)

        candidate = invocation.context.append_iteration(iteration)
        candidate = invocation.hooks.prepare_context(
            ContextInput(
                agent=agent.name,
                client=agent.client,
                context=candidate,
                iteration_number=number,
            )
        )
        invocation.context = candidate.seal_current()
        self._complete_iteration(invocation, response, clock)
        if streaming:
            yield StreamEvent(StreamEventType.ITERATION, iteration=number)

        self._enforce_budget(invocation, number)
        return None

    def _enforce_budget(self, invocation: _Invocation, number: int) -> None:
        check = invocation.monitor.check(invocation.context)
        if check.status == BudgetStatus.HALT:
            raise BudgetExceededError(
                f"Token budget exceeded: {check.used} of {check.limit} tokens used",
                details={"limit": check.limit, "used": check.used, "iteration": number},
                context=invocation.context,
            )

    def _call_provider(
        self,
        invocation: _Invocation,
        number: int,
        prompt: str,
        view: Context,
        messages: List[Message],
        streaming: bool,
    ) -> Generator[StreamEvent, None, ProviderResponse]:
        agent = self.agent
        request = {
            "client": agent.client,
            "prompt": prompt,
            "schema": agent.schema,
            "options": dict(invocation.provider_options),
            "context": view,
            "tools": agent.tools.manifest(),
            "messages": messages,
        }
        with invocation.telemetry.span(
            events.PROVIDER, iteration=number, streaming=streaming
        ) as scope:
            if streaming:
                response = yield from self._stream_provider(invocation, number, request)
            else:
                reply = _provider_request(agent.provider.call, request)
                response = ProviderResponse.from_payload(_unwrap_reply(reply))
            if response.usage is not None:
                scope.measurements.update(response.usage.as_dict())
            scope.metadata["tool_calls"] = len(response.tool_calls)
        return response

    def _stream_provider(
        self, invocation: _Invocation, number: int, request: Dict[str, Any]
    ) -> Generator[StreamEvent, None, ProviderResponse]:
        iterator = iter(_unwrap_reply(_provider_request(self.agent.provider.stream, request)))
        final: Optional[ProviderResponse] = None
        text: List[str] = []
        thinking: List[str] = []
        try:
            while True:
                try:
                    item = next(iterator)
                except StopIteration:
                    break
                except AgentLoopError:
                    raise
                except Exception as exc:
                    raise map_provider_error(exc).to_error() from exc
                if isinstance(item, ProviderResponse):
                    final = item
                    continue
                chunk = StreamChunk.from_payload(item)
                if chunk.content:
                    text.append(chunk.content)
                if chunk.thinking:
                    thinking.append(chunk.thinking)
                invocation.telemetry.emit(
                    events.STREAM_CHUNK, {"size": len(chunk.content or "")}, iteration=number
                )
                yield StreamEvent(StreamEventType.CHUNK, iteration=number, chunk=chunk)
        finally:
            close = getattr(iterator, "close", None)
            if callable(close):
                close()
        if final is None:
            return ProviderResponse(content="".join(text), thinking="".join(thinking) or None)
        if final.content is None and text:
            return final.model_copy(update={"content": "".join(text)})
        return final

    def _complete_iteration(
        self, invocation: _Invocation, response: ProviderResponse, clock: float
    ) -> None:
        iteration = invocation.context.last_iteration
        invocation.context = invocation.hooks.on_iteration_complete(
            IterationCompleteInput(
                agent=self.agent.name,
                client=self.agent.client,
                context=invocation.context,
                iteration=iteration,
                token_usage=response.usage,
            )
        )
        measurements: Dict[str, Any] = {
            "duration_ms": (time.perf_counter() - clock) * 1000.0,
            "tool_calls": len(iteration.tool_calls),
        }
        if response.usage is not None:
            measurements.update(response.usage.as_dict())
        invocation.telemetry.emit(events.ITERATION_STOP, measurements, iteration=iteration.number)

    def _execution_context(self, invocation: _Invocation, number: int) -> Dict[str, Any]:
        return {
            "agent": self.agent.name,
            "client": self.agent.client,
            "iteration": number,
            "arguments": dict(invocation.arguments),
        }

    def _build_result(self, invocation: _Invocation, response: ProviderResponse) -> Result:
        try:
            output = self.agent.parse_output(response.content)
        except (TypeError, ValueError) as exc:
            raise OutputParseError(
                f"Failed to parse provider output: {sanitize_text(str(exc))}",
                details={
                    "output_model": getattr(self.agent.output_model, "__name__", None),
                    "content": response.content,
                },
                context=invocation.context,
            ) from exc
        completed_at = utc_now()
        usage = invocation.context.token_usage
        return Result(
            output=output,
            thinking=response.thinking,
            usage=usage,
            model=response.model,
            finish_reason=response.finish_reason,
            raw_response=response.raw,
            metadata={
                "agent": self.agent.name,
                "provider": self.agent.provider_name,
                "client": self.agent.client,
                "duration_ms": (time.perf_counter() - invocation.started) * 1000.0,
                "started_at": invocation.started_at.isoformat(),
                "completed_at": completed_at.isoformat(),
                "iterations": invocation.context.current_iteration,
                "usage": usage.as_dict(),
            },
            context=invocation.context,
        )


def _run_to_end(loop: Generator[StreamEvent, None, Result]) -> Result:
    while True:
        try:
            next(loop)
        except StopIteration as stop:
            return stop.value


def _provider_request(method: Callable[..., Any], request: Dict[str, Any]) -> Any:
    try:
        return method(**request)
    except AgentLoopError:
        raise
    except Exception as exc:
        mapping = map_provider_error(exc)
        logger.warning(
            "Provider call failed",
            extra={"reason": mapping.reason, "error_type": exc.__class__.__name__},
        )
        raise mapping.to_error() from exc


def _unwrap_reply(reply: Any) -> Any:
    if isinstance(reply, Outcome):
        if reply.is_error:
            raise provider_error_from_reason(reply.reason)
        return reply.value
    return reply


def _candidate_messages(prompt: str, arguments: Mapping[str, Any], view: Context) -> List[Message]:
    messages = [Message.system(prompt)]
    user_content = _user_content(arguments)
    if user_content:
        messages.append(Message.user(user_content))
    messages.extend(view.to_messages())
    return messages


def _user_content(arguments: Mapping[str, Any]) -> Optional[str]:
    for key in INPUT_KEYS:
        value = arguments.get(key)
        if isinstance(value, str):
            return value
    if not arguments:
        return None
    return json.dumps(dict(arguments), default=str, sort_keys=True)


def _response_metadata(response: ProviderResponse) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {}
    if response.usage is not None:
        metadata[USAGE_KEY] = response.usage
    if response.model:
        metadata["model"] = response.model
    if response.finish_reason:
        metadata["finish_reason"] = response.finish_reason
    return metadata


def _halting_failure(
    policy: ErrorPolicy, tool_calls: Sequence[ToolCall], entries: Sequence[ResultEntry]
) -> Optional[AgentLoopError]:
    if policy != ErrorPolicy.HALT:
        return None
    for call, (_, outcome) in zip(tool_calls, entries):
        if outcome.is_ok:
            continue
        reason = outcome.describe_reason()
        details = {"tool": call.name, "tool_call_id": call.id, "reason": reason}
        if call.error_kind == KIND_TIMEOUT:
            return ToolTimeoutError(f"Tool '{call.name}' timed out", details=details)
        if call.error_kind in (KIND_NOT_FOUND, KIND_VALIDATION):
            return ValidationError(reason, details=details)
        return ToolExecutionError(f"Tool execution failed: {call.name}", details=details)
    return None


def _result_measurements(result: Result) -> Dict[str, Any]:
    return {
        "iterations": result.metadata.get("iterations"),
        "total_tokens": result.usage.total_tokens,
    }
