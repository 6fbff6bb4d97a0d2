"""Token accounting against a per-invocation budget."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Union

from agentloop.domain.context import Context
from agentloop.domain.messages import Message
from agentloop.domain.token_budget import BudgetStrategy, TokenBudget
from agentloop.telemetry import events
from agentloop.telemetry.telemetry import Telemetry

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
MESSAGE_OVERHEAD_TOKENS = 10

BudgetLike = Union[TokenBudget, int]


def estimate_message_tokens(messages: Iterable[Message]) -> int:
    """Heuristic token count: four characters per token plus per-message overhead."""

    return sum(
        len(message.content_text()) // CHARS_PER_TOKEN + MESSAGE_OVERHEAD_TOKENS
        for message in messages
    )


def estimate_token_count(context: Context) -> int:
    """Estimate the tokens the context's messages would cost when sent."""

    return estimate_message_tokens(context.to_messages())


def tokens_used(context: Context) -> int:
    """Cumulative provider-reported usage, or the estimate when none was reported."""

    reported = context.token_usage.total_tokens
    if reported > 0:
        return reported
    return estimate_token_count(context)


def tokens_remaining(context: Context, budget: BudgetLike) -> int:
    return max(0, _limit(budget) - tokens_used(context))


def budget_utilization(context: Context, budget: BudgetLike) -> float:
    """Fraction of the budget consumed so far; may exceed 1.0."""

    return tokens_used(context) / _limit(budget)


def exceeds_token_budget(context: Context, budget: BudgetLike) -> bool:
    """True when the estimated size of the context is over ``budget``."""

    return estimate_token_count(context) > _limit(budget)


def _limit(budget: BudgetLike) -> int:
    limit = budget.limit if isinstance(budget, TokenBudget) else budget
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise ValueError(f"budget must be a positive integer, got: {limit!r}")
    return limit


class BudgetStatus(str, Enum):
    OK = "ok"
    WARN = "warn"
    HALT = "halt"


@dataclass(frozen=True)
class BudgetCheck:
    """Decision taken at one iteration boundary."""

    status: BudgetStatus
    used: int
    limit: Optional[int] = None

    @property
    def utilization(self) -> Optional[float]:
        if not self.limit:
            return None
        return self.used / self.limit


class TokenBudgetMonitor:
    """Checks cumulative usage at iteration boundaries.

    A ``halt`` budget reports HALT once usage reaches the limit. A ``warn``
    budget reports WARN once usage reaches ``limit * warn_threshold`` and
    emits a single warning event per invocation.

    Args:
        budget: Budget to enforce, or None to disable checks.
        telemetry: Event sink for budget warnings.
    """

    def __init__(self, budget: Optional[TokenBudget], telemetry: Optional[Telemetry] = None) -> None:
        self.budget = budget
        self._telemetry = telemetry or Telemetry()
        self._warned = False

    def check(self, context: Context) -> BudgetCheck:
        used = tokens_used(context)
        budget = self.budget
        if budget is None:
            return BudgetCheck(BudgetStatus.OK, used)
        if budget.strategy == BudgetStrategy.HALT and used >= budget.limit:
            logger.warning(
                "Token budget exhausted",
                extra={"tokens_used": used, "limit": budget.limit},
            )
            return BudgetCheck(BudgetStatus.HALT, used, budget.limit)
        if budget.strategy == BudgetStrategy.WARN and used >= budget.warn_at:
            if not self._warned:
                self._warned = True
                logger.warning(
                    "Token budget threshold crossed",
                    extra={"tokens_used": used, "limit": budget.limit},
                )
                self._telemetry.emit(
                    events.BUDGET_WARNING,
                    {"tokens_used": used, "limit": budget.limit, "utilization": used / budget.limit},
                    iteration=context.current_iteration,
                    threshold=budget.warn_threshold,
                )
            return BudgetCheck(BudgetStatus.WARN, used, budget.limit)
        return BudgetCheck(BudgetStatus.OK, used, budget.limit)
