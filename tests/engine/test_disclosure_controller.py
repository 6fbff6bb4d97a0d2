"""Tests for progressive disclosure."""

import pytest

from agentloop.domain.context import Context
from agentloop.domain.iteration import Iteration
from agentloop.domain.messages import Message
from agentloop.domain.outcome import Outcome
from agentloop.engine.disclosure import (
    DisclosureOptions,
    ProgressiveDisclosure,
    sliding_window_compact,
    token_budget_compact,
)
from agentloop.processors.truncate import DEFAULT_MARKER
from agentloop.telemetry import events
from agentloop.telemetry.observer import RecordingObserver
from agentloop.telemetry.telemetry import Telemetry


def _context(count: int, text: str = "short") -> Context:
    context = Context.new()
    for number in range(1, count + 1):
        context = context.append_iteration(
            Iteration(number=number, messages=(Message.assistant(text),))
        ).seal_current()
    return context


@pytest.mark.parametrize("iterations,window", [(0, 1), (1, 3), (3, 3), (7, 2), (10, 1)])
def test_sliding_window_invariant(iterations: int, window: int) -> None:
    """The window keeps exactly the last min(N, w) iterations."""
    context = _context(iterations)

    compacted = sliding_window_compact(context, window)

    kept = min(iterations, window)
    assert len(compacted.iterations) == kept
    assert [it.number for it in compacted.iterations] == list(
        range(iterations - kept + 1, iterations + 1)
    )


def test_sliding_window_emits_event(telemetry: Telemetry, recorder: RecordingObserver) -> None:
    """Compaction reports before and after counts."""
    sliding_window_compact(_context(5), 2, telemetry)

    (_, measurements, metadata), = recorder.named(events.DISCLOSURE_SLIDING_WINDOW)
    assert measurements == {"before_count": 5, "after_count": 2, "removed": 3}
    assert metadata["window_size"] == 2
    assert metadata["agent"] == "test_agent"


def test_token_budget_compaction_keeps_newest() -> None:
    """Oldest iterations go first and the last one always stays."""
    context = _context(6, text="x" * 400)

    compacted = token_budget_compact(context, 250)

    assert compacted.iterations[-1].number == 6
    assert len(compacted.iterations) < 6
    assert token_budget_compact(context, 1).iterations[-1].number == 6


def test_process_results_truncates_bare_values() -> None:
    """Wrapped bare values are truncated as their payload."""
    disclosure = ProgressiveDisclosure(DisclosureOptions(truncate=5))

    (_, outcome), = disclosure.process_tool_results([("t", Outcome.ok({"result": "abcdefghij"}))])

    assert outcome.value == {"result": "abcde" + DEFAULT_MARKER}


def test_process_results_skips_small_batches(
    telemetry: Telemetry, recorder: RecordingObserver
) -> None:
    """A batch under the truncate size is returned untouched."""
    disclosure = ProgressiveDisclosure(
        DisclosureOptions(truncate=100, summarize=True), telemetry
    )
    results = [("t", Outcome.ok([1, 2, 3]))]

    assert disclosure.process_tool_results(results) == results
    (_, measurements, metadata), = recorder.named(events.DISCLOSURE_PROCESS_RESULTS)
    assert measurements["skipped"] is True
    assert metadata["strategies"] == []


def test_process_results_runs_in_order(recorder: RecordingObserver, telemetry: Telemetry) -> None:
    """Truncate, summarize and sample apply in that order."""
    disclosure = ProgressiveDisclosure(
        DisclosureOptions(truncate=50, summarize=True, sample=3, skip_small=False), telemetry
    )

    (_, outcome), = disclosure.process_tool_results([("t", Outcome.ok(list(range(100))))])

    assert outcome.value["type"] == "list"
    assert outcome.value["count"] == 51
    (_, _, metadata), = recorder.named(events.DISCLOSURE_PROCESS_RESULTS)
    assert metadata["strategies"] == ["truncate", "summarize", "sample"]


def test_process_results_preserves_errors_and_order() -> None:
    """Errors stay verbatim and entries keep their positions."""
    disclosure = ProgressiveDisclosure(DisclosureOptions(truncate=2, skip_small=False))
    error = Outcome.error("tool exploded with a long message")

    processed = disclosure.process_tool_results(
        [("a", Outcome.ok("hello")), ("b", error), ("c", Outcome.ok([1, 2, 3]))]
    )

    assert [name for name, _ in processed] == ["a", "b", "c"]
    assert processed[1][1] == error
    assert processed[2][1].value == [1, 2, DEFAULT_MARKER]


def test_compact_applies_window_then_token_limit() -> None:
    """The provider view honours both history limits."""
    disclosure = ProgressiveDisclosure(DisclosureOptions(window_size=3, context_token_limit=10_000))

    view = disclosure.compact(_context(8))

    assert [it.number for it in view.iterations] == [6, 7, 8]
    assert view.current_iteration == 8


def test_options_reject_non_positive_sizes() -> None:
    """Invalid sizes fail when the options are built."""
    with pytest.raises(ValueError):
        DisclosureOptions(truncate=0)
