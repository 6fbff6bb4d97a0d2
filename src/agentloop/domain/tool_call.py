from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from agentloop.domain.messages import ToolCallRef
from agentloop.domain.outcome import Outcome, OutcomeStatus


class ToolAttempt(BaseModel):
    """One execution of a tool call.

    The first attempt reuses the id of the request; every retry gets a fresh id.
    """

    id: str
    status: OutcomeStatus
    reason: Optional[str] = Field(default=None, description="Sanitized failure reason")

    model_config = ConfigDict(frozen=True)


class ToolCall(BaseModel):
    """A completed tool invocation and its terminal outcome.

    Instances are produced by the dispatcher once a call reaches a terminal
    state and are never mutated afterwards. ``attempt_log`` keeps every
    execution, retries included, in the order they ran.
    """

    id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    result: Outcome
    attempts: int = Field(default=1, description="Executions including retries")
    attempt_log: Tuple[ToolAttempt, ...] = Field(default_factory=tuple)
    duration_ms: float = Field(default=0.0)
    error_kind: Optional[str] = Field(
        default=None, description="not_found, validation, timeout or tool_error"
    )

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_ref(cls, ref: ToolCallRef, result: Outcome, **extra: Any) -> "ToolCall":
        """Build a completed call from the request it answers."""

        return cls(id=ref.id, name=ref.name, arguments=dict(ref.arguments), result=result, **extra)

    @property
    def succeeded(self) -> bool:
        return self.result.is_ok


RESULT_KEY = "result"


def wrap_bare_result(value: Any) -> Dict[str, Any]:
    """Wrap a non-mapping tool return value as ``{"result": value}``."""

    return {RESULT_KEY: value}


def unwrap_bare_result(value: Any) -> Tuple[Any, bool]:
    """Return the payload of a ``{"result": value}`` wrapper and whether it was one."""

    if isinstance(value, dict) and len(value) == 1 and RESULT_KEY in value:
        return value[RESULT_KEY], True
    return value, False
