from agentloop.domain.context import Context, ContextError
from agentloop.domain.exceptions import (
    AgentLoopError,
    BudgetExceededError,
    ConfigurationError,
    HookError,
    MaxIterationsExceededError,
    OutputParseError,
    ProviderError,
    ProviderTimeoutError,
    ToolExecutionError,
    ToolTimeoutError,
    TransientToolError,
    ValidationError,
)
from agentloop.domain.iteration import Iteration, IterationSealedError
from agentloop.domain.messages import Message, Role, ToolCallRef
from agentloop.domain.outcome import Outcome, OutcomeStatus
from agentloop.domain.policy import ErrorPolicy, RetryPolicy
from agentloop.domain.result import Result
from agentloop.domain.token_budget import BudgetStrategy, TokenBudget
from agentloop.domain.token_usage import TokenUsage
from agentloop.domain.tool import ParameterType, Tool, ToolParameter
from agentloop.domain.tool_call import ToolAttempt, ToolCall

__all__ = [
    "AgentLoopError",
    "BudgetExceededError",
    "BudgetStrategy",
    "ConfigurationError",
    "Context",
    "ContextError",
    "ErrorPolicy",
    "HookError",
    "Iteration",
    "IterationSealedError",
    "MaxIterationsExceededError",
    "Message",
    "Outcome",
    "OutcomeStatus",
    "OutputParseError",
    "ParameterType",
    "ProviderError",
    "ProviderTimeoutError",
    "Result",
    "RetryPolicy",
    "Role",
    "TokenBudget",
    "TokenUsage",
    "Tool",
    "ToolAttempt",
    "ToolCall",
    "ToolCallRef",
    "ToolExecutionError",
    "ToolParameter",
    "ToolTimeoutError",
    "TransientToolError",
    "ValidationError",
]
