from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from agentloop.domain.messages import Message
from agentloop.domain.token_usage import TokenUsage
from agentloop.domain.tool_call import ToolCall

USAGE_KEY = "usage"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class IterationSealedError(ValueError):
    """Raised when a sealed iteration is asked to change."""


class Iteration(BaseModel):
    """One pass of render, provider call and tool dispatch.

    Iterations are values: the ``with_*`` methods return updated copies and
    refuse to touch an iteration whose ``completed_at`` is set.
    """

    number: int = Field(ge=1)
    messages: Tuple[Message, ...] = Field(default_factory=tuple)
    tool_calls: Tuple[ToolCall, ...] = Field(default_factory=tuple)
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @property
    def sealed(self) -> bool:
        return self.completed_at is not None

    @property
    def usage(self) -> TokenUsage:
        """Provider usage recorded for this iteration, zero when absent."""

        raw = self.metadata.get(USAGE_KEY)
        if isinstance(raw, TokenUsage):
            return raw
        return TokenUsage.from_mapping(raw) or TokenUsage()

    @property
    def duration_ms(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds() * 1000.0

    def with_message(self, message: Message) -> "Iteration":
        self._ensure_open()
        return self.model_copy(update={"messages": self.messages + (message,)})

    def with_messages(self, messages: Tuple[Message, ...]) -> "Iteration":
        self._ensure_open()
        return self.model_copy(update={"messages": self.messages + tuple(messages)})

    def with_tool_calls(self, tool_calls: Tuple[ToolCall, ...]) -> "Iteration":
        self._ensure_open()
        return self.model_copy(update={"tool_calls": self.tool_calls + tuple(tool_calls)})

    def seal(self, completed_at: Optional[datetime] = None) -> "Iteration":
        """Return a sealed copy stamped with ``completed_at``."""

        self._ensure_open()
        return self.model_copy(update={"completed_at": completed_at or utc_now()})

    def _ensure_open(self) -> None:
        if self.sealed:
            raise IterationSealedError(f"Iteration {self.number} is sealed")
