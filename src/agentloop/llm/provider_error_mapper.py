from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from agentloop.domain.error_sanitizer import build_exception_details
from agentloop.domain.exceptions import (
    AgentLoopError,
    ProviderError,
    ProviderTimeoutError,
)


@dataclass(frozen=True)
class ProviderErrorMapping:
    """Normalized classification of a provider failure."""

    reason: str
    error_type: type
    details: Dict[str, Any]

    def to_error(self, message: Optional[str] = None) -> ProviderError:
        return self.error_type(
            message or self.details.get("message") or self.reason,
            details=self.details,
            reason=self.reason,
        )


def map_provider_error(error: BaseException) -> ProviderErrorMapping:
    """Map an exception raised by a provider into a stable reason label.

    Args:
        error: Exception raised during the provider call.

    Returns:
        ProviderErrorMapping describing the failure.
    """

    details: Dict[str, Any] = build_exception_details(error)

    if isinstance(error, ProviderError):
        return ProviderErrorMapping(error.reason, type(error), {**details, **error.details})
    if isinstance(error, (httpx.TimeoutException, TimeoutError)):
        return ProviderErrorMapping("timeout", ProviderTimeoutError, details)
    if isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
        details["status_code"] = status_code
        if status_code == 429:
            return ProviderErrorMapping("rate_limit_error", ProviderError, details)
        if status_code in (401, 403):
            return ProviderErrorMapping("api_key_error", ProviderError, details)
        if _is_context_length_payload(_extract_error_payload(error)):
            return ProviderErrorMapping("context_length_error", ProviderError, details)
        if status_code >= 500:
            return ProviderErrorMapping("server_error", ProviderError, details)
        return ProviderErrorMapping("http_error", ProviderError, details)
    if isinstance(error, (httpx.RequestError, ConnectionError)):
        return ProviderErrorMapping("connection_error", ProviderError, details)

    error_name = error.__class__.__name__.lower()
    error_message = str(error).lower()
    if "ratelimit" in error_name or "rate limit" in error_message or "429" in error_message:
        return ProviderErrorMapping("rate_limit_error", ProviderError, details)
    if "authentication" in error_name or "api key" in error_message:
        return ProviderErrorMapping("api_key_error", ProviderError, details)
    if "timeout" in error_name or "timed out" in error_message:
        return ProviderErrorMapping("timeout", ProviderTimeoutError, details)
    return ProviderErrorMapping("provider_error", ProviderError, details)


def provider_error_from_reason(reason: Any) -> AgentLoopError:
    """Build a ProviderError from an ``Outcome.error`` reason returned by a provider."""

    if isinstance(reason, AgentLoopError):
        return reason
    if isinstance(reason, BaseException):
        return map_provider_error(reason).to_error()
    if isinstance(reason, str) and reason.lower() in ("timeout", "timed_out"):
        return ProviderTimeoutError("Provider call timed out", reason="timeout")
    text = reason if isinstance(reason, str) else repr(reason)
    return ProviderError(text, details={"reason": text})


def _extract_error_payload(error: httpx.HTTPStatusError) -> Dict[str, Any]:
    """Extract error payload from an HTTP status error."""

    try:
        payload = error.response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def _is_context_length_payload(payload: Dict[str, Any]) -> bool:
    """Return True when payload indicates a context-length error."""

    error_info = payload.get("error")
    if not isinstance(error_info, dict):
        return False
    code = error_info.get("code") or error_info.get("type")
    if isinstance(code, str) and code.strip().lower() in {
        "context_length_exceeded",
        "context_window_exceeded",
    }:
        return True
    message = error_info.get("message")
    if isinstance(message, str):
        normalized = message.strip().lower()
        return "maximum context length" in normalized or "context length exceeded" in normalized
    return False
