from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from agentloop.domain.iteration import Iteration, utc_now
from agentloop.domain.messages import Message
from agentloop.domain.token_usage import TokenUsage


class ContextError(ValueError):
    """Raised when an update would break the iteration log invariants."""


class Context(BaseModel):
    """Append-only log of the iterations of one agent invocation.

    A Context is an immutable value. Every update returns a new Context and
    leaves the receiver untouched, so a failed hook can never corrupt the
    copy the runtime holds.

    ``current_iteration`` counts every iteration appended to the log.
    Windowed views returned by ``keep_last_iterations`` and friends keep that
    counter and carry the usage of the dropped iterations forward so that
    cumulative token accounting survives compaction.
    """

    iterations: Tuple[Iteration, ...] = Field(default_factory=tuple)
    current_iteration: int = Field(default=0, ge=0)
    dropped_usage: TokenUsage = Field(
        default_factory=TokenUsage,
        description="Usage of iterations removed from this view",
    )
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def new(cls, **metadata: Any) -> "Context":
        return cls(metadata=dict(metadata))

    @property
    def next_iteration_number(self) -> int:
        return self.current_iteration + 1

    @property
    def last_iteration(self) -> Optional[Iteration]:
        return self.iterations[-1] if self.iterations else None

    @property
    def token_usage(self) -> TokenUsage:
        """Cumulative provider usage across all iterations, dropped ones included."""

        total = self.dropped_usage
        for iteration in self.iterations:
            total = total + iteration.usage
        return total

    @property
    def is_compacted(self) -> bool:
        return len(self.iterations) != self.current_iteration

    def append_iteration(self, iteration: Iteration) -> "Context":
        """Append the next iteration.

        Args:
            iteration: Iteration numbered ``current_iteration + 1``.

        Returns:
            A new Context with the iteration appended.

        Raises:
            ContextError: If the number breaks contiguity.
        """

        if iteration.number != self.next_iteration_number:
            raise ContextError(
                f"Expected iteration {self.next_iteration_number}, got {iteration.number}"
            )
        return self.model_copy(
            update={
                "iterations": self.iterations + (iteration,),
                "current_iteration": iteration.number,
            }
        )

    def replace_last(self, iteration: Iteration) -> "Context":
        """Swap the most recent iteration for an updated copy with the same number."""

        last = self.last_iteration
        if last is None or last.number != iteration.number:
            raise ContextError(f"Iteration {iteration.number} is not the current iteration")
        return self.model_copy(update={"iterations": self.iterations[:-1] + (iteration,)})

    def seal_current(self, completed_at: Optional[datetime] = None) -> "Context":
        """Seal the most recent iteration; a no-op when it is already sealed."""

        last = self.last_iteration
        if last is None:
            raise ContextError("No iteration to seal")
        if last.sealed:
            return self
        return self.replace_last(last.seal(completed_at))

    def get_iteration(self, number: int) -> Optional[Iteration]:
        for iteration in self.iterations:
            if iteration.number == number:
                return iteration
        return None

    def iteration_range(self, start: int, end: int) -> List[Iteration]:
        """Return the iterations numbered ``start`` through ``end`` inclusive."""

        return [it for it in self.iterations if start <= it.number <= end]

    def to_messages(self) -> List[Message]:
        """Flatten the messages of every iteration in log order."""

        messages: List[Message] = []
        for iteration in self.iterations:
            messages.extend(iteration.messages)
        return messages

    def keep_last_iterations(self, count: int) -> "Context":
        """Return a view holding only the most recent ``count`` iterations.

        Raises:
            ValueError: If ``count`` is not a positive integer.
        """

        if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
            raise ValueError("window_size must be a positive integer")
        if count >= len(self.iterations):
            return self
        return self._without(self.iterations[: len(self.iterations) - count])

    def drop_oldest(self, count: int = 1) -> "Context":
        """Return a view without the ``count`` oldest iterations."""

        if count <= 0:
            return self
        return self._without(self.iterations[:count])

    def remove_old_iterations(
        self, max_age_seconds: float, now: Optional[datetime] = None
    ) -> "Context":
        """Return a view without iterations started more than ``max_age_seconds`` ago."""

        cutoff = (now or utc_now()) - timedelta(seconds=max_age_seconds)
        stale = tuple(it for it in self.iterations if it.started_at < cutoff)
        return self._without(stale) if stale else self

    def _without(self, removed: Tuple[Iteration, ...]) -> "Context":
        removed_numbers = {it.number for it in removed}
        dropped = self.dropped_usage
        for iteration in removed:
            dropped = dropped + iteration.usage
        return self.model_copy(
            update={
                "iterations": tuple(
                    it for it in self.iterations if it.number not in removed_numbers
                ),
                "dropped_usage": dropped,
            }
        )
