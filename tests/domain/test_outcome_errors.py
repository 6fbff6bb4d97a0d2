"""Tests for outcomes, typed errors and detail sanitizing."""

import pytest

from agentloop.domain.error_sanitizer import (
    REDACTED_VALUE,
    build_exception_details,
    sanitize_error_details,
    sanitize_text,
)
from agentloop.domain.exceptions import (
    AgentLoopError,
    HookError,
    ProviderError,
    ProviderTimeoutError,
    ToolExecutionError,
    ToolTimeoutError,
)
from agentloop.domain.outcome import Outcome


def test_outcome_ok_and_error() -> None:
    """Outcomes carry either a value or a reason."""
    ok = Outcome.ok({"a": 1})
    error = Outcome.error("boom")

    assert ok.is_ok and not ok.is_error
    assert ok.unwrap() == {"a": 1}
    assert error.is_error
    assert error.describe_reason() == "boom"


def test_outcome_unwrap_raises_typed_error() -> None:
    """Unwrapping an error raises the carried exception."""
    outcome = Outcome.error(HookError("stop"))

    with pytest.raises(HookError, match="stop"):
        outcome.unwrap()


def test_outcome_unwrap_plain_reason() -> None:
    """Non-exception reasons raise ValueError."""
    with pytest.raises(ValueError, match="timeout"):
        Outcome.error("timeout").unwrap()


def test_error_hierarchy_and_reasons() -> None:
    """Timeout errors are subtypes of their origin and carry stable reasons."""
    assert issubclass(ToolTimeoutError, ToolExecutionError)
    assert issubclass(ProviderTimeoutError, ProviderError)
    assert ToolTimeoutError.reason == "timeout"
    assert ProviderError("x", reason="rate_limit_error").reason == "rate_limit_error"


def test_error_details_are_sanitized() -> None:
    """Secrets in details never reach the error."""
    error = AgentLoopError("failed", details={"api_key": "sk-abcdefghijklmnop", "tokens_used": 12})

    assert error.details["api_key"] == REDACTED_VALUE
    assert error.details["tokens_used"] == 12


def test_with_context_attaches_partial_context() -> None:
    """The partial context rides on the error."""
    error = AgentLoopError("failed").with_context("ctx")

    assert error.context == "ctx"


def test_sanitize_text_redacts_tokens() -> None:
    """Bearer tokens and sk- keys are redacted in free text."""
    text = sanitize_text("Authorization: Bearer abcdefghijklmnop sk-1234567890abcdef")

    assert "abcdefghijklmnop" not in text
    assert "sk-1234567890abcdef" not in text


def test_sanitize_text_caps_length() -> None:
    """Long strings are cut and flagged."""
    text = sanitize_text("x" * 50, max_length=10)

    assert text == "x" * 10 + "...[truncated]"


def test_sanitize_details_bounds_depth_and_items() -> None:
    """Deep nesting is redacted and long collections are cut."""
    details = sanitize_error_details(
        {"nested": {"deeper": {"deepest": 1}}, "items": list(range(5))},
        max_depth=3,
        max_items=3,
    )

    assert details["nested"] == {"deeper": {"deepest": REDACTED_VALUE}}
    assert details["items"] == [0, 1, 2, REDACTED_VALUE]


def test_build_exception_details_includes_cause() -> None:
    """Exception summaries name the error and its cause."""
    try:
        try:
            raise ConnectionError("refused")
        except ConnectionError as cause:
            raise RuntimeError("wrapped") from cause
    except RuntimeError as error:
        details = build_exception_details(error)

    assert details == {
        "error_class": "RuntimeError",
        "message": "wrapped",
        "cause_class": "ConnectionError",
        "cause_message": "refused",
    }
