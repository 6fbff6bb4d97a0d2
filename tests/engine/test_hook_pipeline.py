"""Tests for the hook pipeline."""

from agentloop.domain.context import Context
from agentloop.domain.exceptions import HookError, MaxIterationsExceededError
from agentloop.domain.iteration import Iteration
from agentloop.domain.messages import Message, ToolCallRef
from agentloop.domain.outcome import Outcome
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
from agentloop.telemetry import events
from agentloop.telemetry.observer import RecordingObserver
from agentloop.telemetry.telemetry import Telemetry


def _context(count: int = 1) -> Context:
    context = Context.new()
    for number in range(1, count + 1):
        context = context.append_iteration(
            Iteration(
                number=number,
                messages=(Message.assistant("done"),),
                metadata={"usage": {"input_tokens": 450, "output_tokens": 0}},
            )
        ).seal_current()
    return context


def _start_input(number: int, max_iterations: int = 3) -> IterationStartInput:
    return IterationStartInput(
        agent="test_agent",
        client="mock:test",
        context=_context(number - 1),
        iteration_number=number,
        max_iterations=max_iterations,
    )


def test_default_start_enforces_max_iterations() -> None:
    """Iteration max + 1 is refused with the iteration ceiling in the details."""
    pipeline = HookPipeline()

    assert pipeline.on_iteration_start(_start_input(3)).is_ok
    outcome = pipeline.on_iteration_start(_start_input(4))

    assert outcome.is_error
    assert isinstance(outcome.reason, MaxIterationsExceededError)
    assert outcome.reason.message == "Max iterations (3) exceeded"
    assert outcome.reason.details == {"max": 3, "current": 4}
    assert outcome.reason.context.current_iteration == 3


def test_custom_start_hook_error_is_fatal(
    telemetry: Telemetry, recorder: RecordingObserver
) -> None:
    """A start hook error stops the loop as a HookError."""

    class Stopper:
        def on_iteration_start(self, hook_input: IterationStartInput) -> Outcome:
            return Outcome.error("not today")

    outcome = HookPipeline([Stopper()], telemetry=telemetry).on_iteration_start(_start_input(1))

    assert isinstance(outcome.reason, HookError)
    assert outcome.reason.message == "not today"
    (_, _, metadata), = recorder.named(events.HOOK_ERROR)
    assert metadata["fatal"] is True
    assert metadata["hook"] == "Stopper"


def test_start_hook_must_keep_iteration_count() -> None:
    """A start hook cannot rewind or advance the log."""

    class Rewinder:
        def on_iteration_start(self, hook_input: IterationStartInput) -> Context:
            return Context.new()

    outcome = HookPipeline([Rewinder()]).on_iteration_start(_start_input(3))

    assert isinstance(outcome.reason, HookError)
    assert "invalid context" in outcome.reason.message


def test_prepare_messages_chains_hooks_in_order() -> None:
    """Each hook sees the previous hook's output."""

    class AddSystem:
        def prepare_messages(self, hook_input: MessagesInput) -> Outcome:
            return Outcome.ok([Message.system("rules")] + hook_input.messages)

    class Shout:
        def prepare_messages(self, hook_input: MessagesInput) -> list:
            return [m.model_copy(update={"content": m.content.upper()}) for m in hook_input.messages]

    messages = HookPipeline([AddSystem(), Shout()]).prepare_messages(
        MessagesInput(
            agent="a",
            client="c",
            context=_context(0),
            iteration_number=1,
            messages=[Message.user("hi")],
        )
    )

    assert [m.content for m in messages] == ["RULES", "HI"]


def test_failing_hook_falls_back_to_input(
    telemetry: Telemetry, recorder: RecordingObserver
) -> None:
    """A raising or erroring hook leaves the value unchanged and reports the error."""

    class Broken:
        def prepare_context(self, hook_input: ContextInput) -> Outcome:
            return Outcome.error("always fails")

        def prepare_tool_results(self, hook_input: ToolResultsInput) -> Outcome:
            raise RuntimeError("boom")

    pipeline = HookPipeline([Broken()], telemetry=telemetry)
    context = _context(2)
    results = [("t", Outcome.ok({"a": 1}))]

    assert pipeline.prepare_context(
        ContextInput(agent="a", client="c", context=context, iteration_number=2)
    ) is context
    assert pipeline.prepare_tool_results(
        ToolResultsInput(agent="a", client="c", context=context, iteration_number=2, results=results)
    ) == results

    errors = recorder.named(events.HOOK_ERROR)
    assert [meta["hook_point"] for _, _, meta in errors] == ["prepare_context", "prepare_tool_results"]
    assert errors[0][2]["reason"] == "always fails"


def test_invalid_return_values_fall_back() -> None:
    """Wrongly shaped hook output is treated as a hook failure."""

    class DropsResults:
        def prepare_tool_results(self, hook_input: ToolResultsInput) -> list:
            return []

        def prepare_context(self, hook_input: ContextInput) -> str:
            return "not a context"

    pipeline = HookPipeline([DropsResults()])
    context = _context(1)
    results = [("t", Outcome.ok(1))]

    assert pipeline.prepare_tool_results(
        ToolResultsInput(agent="a", client="c", context=context, iteration_number=1, results=results)
    ) == results
    assert pipeline.prepare_context(
        ContextInput(agent="a", client="c", context=context, iteration_number=1)
    ) is context


def test_none_return_means_unchanged() -> None:
    """Observers that return nothing do not alter the value."""
    seen = []

    class Watcher:
        def prepare_messages(self, hook_input: MessagesInput) -> None:
            seen.append(len(hook_input.messages))

    messages = [Message.user("hi")]
    result = HookPipeline([Watcher()]).prepare_messages(
        MessagesInput(agent="a", client="c", context=_context(0), iteration_number=1, messages=messages)
    )

    assert result == messages
    assert seen == [1]


def test_default_complete_warns_near_client_limit(
    telemetry: Telemetry, recorder: RecordingObserver
) -> None:
    """The token limit warning fires at the threshold of the client's window."""
    defaults = DefaultHooks(TokenLimits.from_mapping({"mock:test": 1000}), telemetry)
    pipeline = HookPipeline(defaults=defaults, telemetry=telemetry)
    context = _context(2)

    returned = pipeline.on_iteration_complete(
        IterationCompleteInput(
            agent="test_agent",
            client="mock:test",
            context=context,
            iteration=context.last_iteration,
            token_usage=context.last_iteration.usage,
        )
    )

    assert returned is context
    (_, measurements, metadata), = recorder.named(events.TOKEN_LIMIT_WARNING)
    assert measurements == {"cumulative_tokens": 900}
    assert metadata["limit"] == 1000
    assert metadata["threshold_percent"] == 80


def test_hook_spans_are_emitted(telemetry: Telemetry, recorder: RecordingObserver) -> None:
    """Every callback run is bracketed by start and stop events."""
    HookPipeline(telemetry=telemetry).on_iteration_start(_start_input(1))

    assert recorder.names()[:2] == [events.HOOK_START, events.HOOK_STOP]
    assert recorder.named(events.HOOK_STOP)[0][2]["hook"] == "DefaultHooks"


def test_in_place_changes_do_not_leak_from_failed_hooks() -> None:
    """A hook that mutates its input and then fails leaves the caller's values intact."""

    class Tamperer:
        def prepare_context(self, hook_input: ContextInput) -> Outcome:
            hook_input.context.metadata.clear()
            hook_input.context.last_iteration.metadata["injected"] = "garbage"
            return Outcome.error("nope")

        def prepare_tool_results(self, hook_input: ToolResultsInput) -> None:
            hook_input.results[0][1].value["a"] = 99
            raise RuntimeError("boom")

        def prepare_messages(self, hook_input: MessagesInput) -> Outcome:
            hook_input.messages[0].tool_calls.clear()
            return Outcome.error("nope")

    pipeline = HookPipeline([Tamperer()])
    context = Context.new(input={"message": "x"}).append_iteration(
        Iteration(
            number=1,
            messages=(Message.assistant(None, [ToolCallRef(id="c1", name="t", arguments={"q": 1})]),),
        )
    )
    payload = {"a": 1}

    pipeline.prepare_context(ContextInput(agent="a", client="c", context=context, iteration_number=1))
    pipeline.prepare_tool_results(
        ToolResultsInput(
            agent="a", client="c", context=context, iteration_number=1, results=[("t", Outcome.ok(payload))]
        )
    )
    pipeline.prepare_messages(
        MessagesInput(
            agent="a", client="c", context=context, iteration_number=1, messages=list(context.to_messages())
        )
    )

    assert context.metadata == {"input": {"message": "x"}}
    assert context.last_iteration.metadata == {}
    assert payload == {"a": 1}
    assert [call.id for call in context.last_iteration.messages[0].tool_calls] == ["c1"]
