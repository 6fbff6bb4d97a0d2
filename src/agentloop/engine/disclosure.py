"""Progressive disclosure: shrink tool results and the history sent to the provider."""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, PositiveInt

from agentloop.domain.context import Context
from agentloop.domain.outcome import Outcome
from agentloop.domain.tool_call import unwrap_bare_result, wrap_bare_result
from agentloop.engine.budget import estimate_token_count
from agentloop.processors.base import ResultEntry, ResultProcessor, estimate_size
from agentloop.processors.sample import Sample, SampleStrategy
from agentloop.processors.summarize import Summarize
from agentloop.processors.truncate import DEFAULT_MARKER, Truncate
from agentloop.telemetry import events
from agentloop.telemetry.telemetry import Telemetry

logger = logging.getLogger(__name__)


class DisclosureOptions(BaseModel):
    """Per-invocation progressive disclosure settings."""

    truncate: Optional[PositiveInt] = None
    truncate_marker: str = DEFAULT_MARKER
    summarize: bool = False
    summarize_options: Dict[str, Any] = Field(
        default_factory=dict, description="Keyword arguments for Summarize."
    )
    sample: Optional[PositiveInt] = None
    sample_strategy: SampleStrategy = SampleStrategy.FIRST
    skip_small: bool = True
    window_size: Optional[PositiveInt] = None
    context_token_limit: Optional[PositiveInt] = None

    model_config = ConfigDict(frozen=True)

    @property
    def processes_results(self) -> bool:
        return bool(self.truncate or self.summarize or self.sample)

    @property
    def compacts_context(self) -> bool:
        return bool(self.window_size or self.context_token_limit)

    def summary(self) -> Dict[str, Any]:
        return self.model_dump(exclude_defaults=True, mode="json")


class ProgressiveDisclosure:
    """Applies the configured processors to tool results and windows the history.

    Results pass through truncate, summarize and sample in that order. When
    ``skip_small`` is set and a truncate size is configured, a batch whose
    results all fit under that size is left untouched.

    Args:
        options: Disclosure settings.
        telemetry: Event sink for strategy applications.
    """

    def __init__(self, options: DisclosureOptions, telemetry: Optional[Telemetry] = None) -> None:
        self.options = options
        self._telemetry = telemetry or Telemetry()
        self._processors = self._build_processors(options)

    @staticmethod
    def _build_processors(options: DisclosureOptions) -> List[ResultProcessor]:
        processors: List[ResultProcessor] = []
        if options.truncate:
            processors.append(Truncate(options.truncate, options.truncate_marker))
        if options.summarize:
            processors.append(Summarize(**options.summarize_options))
        if options.sample:
            processors.append(Sample(options.sample, options.sample_strategy))
        return processors

    def process_tool_results(self, results: Sequence[ResultEntry]) -> List[ResultEntry]:
        """Shrink successful results; error results pass through verbatim.

        A bare value the dispatcher wrapped as ``{"result": value}`` is
        processed as ``value`` and wrapped again afterwards.
        """

        processed, wrapped = _payloads(results)
        skipped = not self._processors or self._all_small(processed)
        applied: List[str] = []
        if skipped:
            logger.debug("All results under threshold, skipping processing")
        else:
            for processor in self._processors:
                logger.debug("Applying %s to %d results", processor.name, len(processed))
                processed = processor.process(processed)
                applied.append(processor.name)
        self._telemetry.emit(
            events.DISCLOSURE_PROCESS_RESULTS,
            {"count": len(processed), "skipped": skipped},
            strategies=applied,
            options=self.options.summary(),
        )
        if skipped:
            return list(results)
        return [
            (name, Outcome.ok(wrap_bare_result(outcome.value)) if was_wrapped and outcome.is_ok else outcome)
            for (name, outcome), was_wrapped in zip(processed, wrapped)
        ]

    def _all_small(self, results: Sequence[ResultEntry]) -> bool:
        threshold = self.options.truncate
        if not self.options.skip_small or threshold is None:
            return False
        return all(
            estimate_size(outcome.value) <= threshold
            for _, outcome in results
            if outcome.is_ok
        )

    def compact(self, context: Context) -> Context:
        """Return the view of ``context`` that is sent to the provider."""

        view = context
        if self.options.window_size:
            view = sliding_window_compact(view, self.options.window_size, self._telemetry)
        if self.options.context_token_limit:
            view = token_budget_compact(view, self.options.context_token_limit, self._telemetry)
        return view


def _payloads(results: Sequence[ResultEntry]) -> Tuple[List[ResultEntry], List[bool]]:
    entries: List[ResultEntry] = []
    wrapped: List[bool] = []
    for name, outcome in results:
        if outcome.is_ok:
            payload, was_wrapped = unwrap_bare_result(outcome.value)
            if was_wrapped:
                outcome = Outcome.ok(payload)
        else:
            was_wrapped = False
        entries.append((name, outcome))
        wrapped.append(was_wrapped)
    return entries, wrapped


def sliding_window_compact(
    context: Context, window_size: int, telemetry: Optional[Telemetry] = None
) -> Context:
    """Keep only the most recent ``window_size`` iterations.

    Raises:
        ValueError: If ``window_size`` is not a positive integer.
    """

    before_count = len(context.iterations)
    compacted = context.keep_last_iterations(window_size)
    after_count = len(compacted.iterations)
    removed = before_count - after_count
    if removed > 0:
        logger.info(
            "Sliding window compaction removed %d iterations",
            removed,
            extra={"window_size": window_size},
        )
    (telemetry or Telemetry()).emit(
        events.DISCLOSURE_SLIDING_WINDOW,
        {"before_count": before_count, "after_count": after_count, "removed": removed},
        window_size=window_size,
    )
    return compacted


def token_budget_compact(
    context: Context, max_tokens: int, telemetry: Optional[Telemetry] = None
) -> Context:
    """Drop the oldest iterations until the estimated size fits ``max_tokens``.

    The most recent iteration is always kept.
    """

    before_count = len(context.iterations)
    before_tokens = estimate_token_count(context)
    compacted = context
    while len(compacted.iterations) > 1 and estimate_token_count(compacted) > max_tokens:
        compacted = compacted.drop_oldest(1)
    removed = before_count - len(compacted.iterations)
    after_tokens = estimate_token_count(compacted) if removed else before_tokens
    if removed > 0:
        logger.info(
            "Token budget compaction removed %d iterations",
            removed,
            extra={"max_tokens": max_tokens},
        )
    (telemetry or Telemetry()).emit(
        events.DISCLOSURE_TOKEN_COMPACTION,
        {
            "before_count": before_count,
            "after_count": len(compacted.iterations),
            "removed": removed,
            "before_tokens": before_tokens,
            "after_tokens": after_tokens,
        },
        max_tokens=max_tokens,
    )
    return compacted

