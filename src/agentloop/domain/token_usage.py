from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class TokenUsage(BaseModel):
    """Input and output token counts reported by a provider."""

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )

    @classmethod
    def from_mapping(cls, usage: Optional[Mapping[str, Any]]) -> Optional["TokenUsage"]:
        """Read usage from common provider key spellings.

        Accepts ``input_tokens``/``output_tokens`` as well as the
        ``prompt_tokens``/``completion_tokens`` pair. Returns None when no
        usage is present.
        """

        if not usage:
            return None
        input_tokens = usage.get("input_tokens", usage.get("prompt_tokens"))
        output_tokens = usage.get("output_tokens", usage.get("completion_tokens"))
        if input_tokens is None and output_tokens is None:
            total = usage.get("total_tokens")
            if total is None:
                return None
            return cls(input_tokens=int(total), output_tokens=0)
        return cls(input_tokens=int(input_tokens or 0), output_tokens=int(output_tokens or 0))

    def as_dict(self) -> dict:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }
