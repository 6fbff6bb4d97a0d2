from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ErrorPolicy(str, Enum):
    """How a tool error affects the invocation."""

    CONTINUE = "continue"
    HALT = "halt"


class RetryPolicy(BaseModel):
    """Bounded retry of transient tool failures."""

    max_retries: int = Field(default=0, ge=0, description="Retries after the first attempt")
    wait_seconds: float = Field(default=0.0, ge=0.0, description="Delay between attempts")

    model_config = ConfigDict(frozen=True)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1
