from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from agentloop.domain.context import Context
from agentloop.domain.token_usage import TokenUsage


class Result(BaseModel):
    """Terminal output of a successful agent invocation."""

    output: Any = Field(description="Validated final output")
    thinking: Optional[str] = Field(default=None, description="Provider reasoning text")
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: Optional[str] = None
    finish_reason: Optional[str] = None
    raw_response: Optional[Any] = Field(default=None, exclude=True)
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="provider, duration_ms, usage, started_at, completed_at, iterations",
    )
    context: Context = Field(default_factory=Context, exclude=True)

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    def unwrap(self) -> Any:
        return self.output
