from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class OutcomeStatus(str, Enum):
    """Tag for an Outcome value."""

    OK = "ok"
    ERROR = "error"


class Outcome(BaseModel):
    """Tagged success/failure value passed across runtime seams.

    Expected failures (bad tool arguments, tool errors, hook errors, budget
    exhaustion) travel as ``Outcome.error`` values instead of exceptions.
    """

    status: OutcomeStatus = Field(description="Which side of the union is set.")
    value: Optional[Any] = Field(default=None, description="Success payload.")
    reason: Optional[Any] = Field(default=None, description="Failure reason.")

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @classmethod
    def ok(cls, value: Any = None) -> "Outcome":
        """Build a successful outcome.

        Args:
            value: Payload carried by the outcome.

        Returns:
            An Outcome tagged ``ok``.
        """

        return cls(status=OutcomeStatus.OK, value=value)

    @classmethod
    def error(cls, reason: Any) -> "Outcome":
        """Build a failed outcome.

        Args:
            reason: Failure reason; a string label or a typed error.

        Returns:
            An Outcome tagged ``error``.
        """

        return cls(status=OutcomeStatus.ERROR, reason=reason)

    @property
    def is_ok(self) -> bool:
        return self.status == OutcomeStatus.OK

    @property
    def is_error(self) -> bool:
        return self.status == OutcomeStatus.ERROR

    def unwrap(self) -> Any:
        """Return the success value or raise the failure.

        Raises:
            Exception: The failure reason when it is an exception instance.
            ValueError: When the failure reason is not an exception.
        """

        if self.is_ok:
            return self.value
        if isinstance(self.reason, BaseException):
            raise self.reason
        raise ValueError(f"unwrap called on error outcome: {self.reason!r}")

    def describe_reason(self) -> str:
        """Render the failure reason as text for messages and logs."""

        if self.reason is None:
            return ""
        if isinstance(self.reason, str):
            return self.reason
        if isinstance(self.reason, BaseException):
            return str(self.reason) or self.reason.__class__.__name__
        return repr(self.reason)
