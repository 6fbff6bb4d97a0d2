from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class BudgetStrategy(str, Enum):
    """What happens when cumulative usage crosses the budget."""

    HALT = "halt"
    WARN = "warn"


class TokenBudget(BaseModel):
    """Read-only token budget for one invocation."""

    limit: int = Field(gt=0, description="Maximum cumulative tokens")
    strategy: BudgetStrategy = Field(default=BudgetStrategy.WARN)
    warn_threshold: float = Field(
        default=0.8, gt=0.0, le=1.0, description="Fraction of limit that triggers a warning"
    )

    model_config = ConfigDict(frozen=True)

    @property
    def warn_at(self) -> float:
        return self.limit * self.warn_threshold
