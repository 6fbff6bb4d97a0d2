from typing import Any, Dict, Mapping, Optional

from agentloop.domain.error_sanitizer import sanitize_error_details


class AgentLoopError(Exception):
    """Base exception for the agentloop runtime.

    Every typed error carries a short message, a sanitized details mapping and,
    for fatal loop conditions, the context accumulated up to the failure.
    """

    reason: str = "agent_error"

    def __init__(
        self,
        message: str = "",
        details: Optional[Mapping[str, Any]] = None,
        context: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = sanitize_error_details(details or {})
        self.context = context

    def with_context(self, context: Any) -> "AgentLoopError":
        """Attach the partial context and return the same error."""

        self.context = context
        return self

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AgentLoopError):
            return NotImplemented
        return type(self) is type(other) and self.message == other.message

    def __hash__(self) -> int:
        return hash((type(self), self.message))


class ValidationError(AgentLoopError):
    """Tool arguments were missing, unknown or of the wrong type."""

    reason = "validation_error"


class ToolExecutionError(AgentLoopError):
    """A tool raised or returned an error."""

    reason = "tool_error"


class ToolTimeoutError(ToolExecutionError):
    """A tool exceeded its configured timeout."""

    reason = "timeout"


class ProviderError(AgentLoopError):
    """The LLM provider failed to produce a response."""

    reason = "provider_error"

    def __init__(
        self,
        message: str = "",
        details: Optional[Mapping[str, Any]] = None,
        context: Optional[Any] = None,
        reason: Optional[str] = None,
    ) -> None:
        super().__init__(message, details=details, context=context)
        if reason is not None:
            self.reason = reason


class ProviderTimeoutError(ProviderError):
    """The provider call exceeded its time bound."""

    reason = "provider_timeout"


class HookError(AgentLoopError):
    """A hook implementation raised or returned an error."""

    reason = "hook_error"


class BudgetExceededError(AgentLoopError):
    """Cumulative token usage reached the configured budget."""

    reason = "budget_exceeded"


class MaxIterationsExceededError(AgentLoopError):
    """The loop reached its iteration ceiling without a final answer."""

    reason = "max_iterations_exceeded"


class OutputParseError(AgentLoopError):
    """The final provider output failed structured validation."""

    reason = "output_parse_error"


class ConfigurationError(AgentLoopError):
    """Runtime options are invalid."""

    reason = "configuration_error"


class TransientToolError(Exception):
    """Raised by tool functions for failures worth retrying."""
