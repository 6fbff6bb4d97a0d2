from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

DEFAULT_WARNING_THRESHOLD = 0.8


@dataclass(frozen=True)
class TokenLimitWarning:
    """A client's context window is close to full."""

    limit: int
    threshold: float
    cumulative_tokens: int


@dataclass(frozen=True)
class TokenLimits:
    """Context window sizes per client id, e.g. ``"openai:gpt-4o"``."""

    limits: Mapping[str, int] = field(default_factory=dict)
    warning_threshold: float = DEFAULT_WARNING_THRESHOLD

    def get_limit(self, client: str) -> Optional[int]:
        return self.limits.get(client)

    def check_limit(self, cumulative_tokens: int, client: str) -> Optional[TokenLimitWarning]:
        """Return a warning once usage reaches the threshold share of the client's limit.

        Clients without a configured limit never warn.
        """

        limit = self.get_limit(client)
        if limit is None:
            return None
        if cumulative_tokens >= int(limit * self.warning_threshold):
            return TokenLimitWarning(limit, self.warning_threshold, cumulative_tokens)
        return None

    @classmethod
    def from_mapping(
        cls, limits: Optional[Dict[str, int]], threshold: Optional[float] = None
    ) -> "TokenLimits":
        return cls(
            limits=dict(limits or {}),
            warning_threshold=DEFAULT_WARNING_THRESHOLD if threshold is None else threshold,
        )
