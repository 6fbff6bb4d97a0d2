from enum import Enum
from typing import Any, List

from agentloop.processors.base import ResultProcessor, require_positive_int

DEFAULT_SAMPLE_SIZE = 5


class SampleStrategy(str, Enum):
    """Deterministic ways of choosing sampled items."""

    FIRST = "first"
    DISTRIBUTED = "distributed"


class Sample(ResultProcessor):
    """Reduces list results to a reproducible subset.

    A list longer than ``sample_size`` becomes
    ``{"items", "total_count", "sampled": True, "strategy"}``. Shorter lists
    and non-list payloads pass through unchanged.

    Args:
        sample_size: Number of items kept.
        strategy: ``first`` keeps the head of the list, ``distributed`` keeps
            evenly spaced items starting at index 0.
    """

    name = "sample"

    def __init__(
        self,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
        strategy: SampleStrategy = SampleStrategy.FIRST,
    ) -> None:
        self.sample_size = require_positive_int("sample_size", sample_size)
        try:
            self.strategy = SampleStrategy(strategy)
        except ValueError:
            allowed = ", ".join(s.value for s in SampleStrategy)
            raise ValueError(
                f"strategy must be one of: {allowed}, got: {strategy!r}"
            ) from None

    def transform(self, data: Any) -> Any:
        if not isinstance(data, (list, tuple)) or len(data) <= self.sample_size:
            return data
        return {
            "items": self._select(list(data)),
            "total_count": len(data),
            "sampled": True,
            "strategy": self.strategy.value,
        }

    def _select(self, items: List[Any]) -> List[Any]:
        if self.strategy == SampleStrategy.FIRST:
            return items[: self.sample_size]
        total = len(items)
        return [items[index * total // self.sample_size] for index in range(self.sample_size)]
