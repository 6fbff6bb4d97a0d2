"""Sanitize error details before they reach errors, events and logs."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Pattern, Tuple

REDACTED_VALUE = "<redacted>"
DEFAULT_MAX_STRING_LENGTH = 256
DEFAULT_MAX_ITEMS = 25
DEFAULT_MAX_DEPTH = 4

# Keys such as ``tokens_used`` stay visible; only credential-like keys match.
_SENSITIVE_KEY_PATTERN = re.compile(
    r"(?i)(api[_-]?key|secret|password|passwd|authorization|"
    r"access[_-]?token|auth[_-]?token|refresh[_-]?token|credential|cookie)"
)

_TOKEN_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"sk-[A-Za-z0-9_-]{10,}"),
    re.compile(r"(?i)bearer\s+[A-Za-z0-9._-]{10,}"),
    re.compile(r"(?i)(api[_-]?key\s*[=:]\s*)[A-Za-z0-9._-]{8,}"),
)


@dataclass(frozen=True)
class DetailSanitizer:
    """Redacts secrets and bounds the size of structured error details.

    Args:
        max_depth: Maximum nesting depth kept before values are redacted.
        max_items: Maximum items kept per mapping or sequence.
        max_string_length: Maximum length of any string value.
    """

    max_depth: int = DEFAULT_MAX_DEPTH
    max_items: int = DEFAULT_MAX_ITEMS
    max_string_length: int = DEFAULT_MAX_STRING_LENGTH

    def text(self, value: str) -> str:
        """Redact secrets in ``value`` and cap its length."""

        redacted = value
        for pattern in _TOKEN_PATTERNS:
            if pattern.groups:
                redacted = pattern.sub(lambda m: f"{m.group(1)}{REDACTED_VALUE}", redacted)
            else:
                redacted = pattern.sub(REDACTED_VALUE, redacted)
        if len(redacted) <= self.max_string_length:
            return redacted
        return f"{redacted[: self.max_string_length]}...[truncated]"

    def details(self, details: Mapping[str, Any]) -> Dict[str, Any]:
        """Sanitize a details mapping recursively."""

        sanitized = self._value(details, self.max_depth)
        if isinstance(sanitized, dict):
            return sanitized
        return {"value": sanitized}

    def exception(self, error: BaseException) -> Dict[str, Any]:
        """Summarize an exception and its cause as a sanitized mapping."""

        details: Dict[str, Any] = {"error_class": error.__class__.__name__}
        message = str(error)
        if message:
            details["message"] = self.text(message)
        cause = error.__cause__
        if isinstance(cause, BaseException):
            details["cause_class"] = cause.__class__.__name__
            cause_message = str(cause)
            if cause_message:
                details["cause_message"] = self.text(cause_message)
        return details

    def _value(self, value: Any, depth: int) -> Any:
        if depth <= 0:
            return REDACTED_VALUE
        if isinstance(value, str):
            return self.text(value)
        if value is None or isinstance(value, (bool, int, float)):
            return value
        if isinstance(value, Mapping):
            return self._mapping(value, depth)
        if isinstance(value, (list, tuple, set, frozenset)):
            return self._sequence(value, depth)
        return self.text(str(value))

    def _mapping(self, value: Mapping[Any, Any], depth: int) -> Dict[str, Any]:
        sanitized: Dict[str, Any] = {}
        for index, (key, item) in enumerate(value.items()):
            if index >= self.max_items:
                sanitized["_truncated"] = True
                break
            key_text = str(key)
            if _SENSITIVE_KEY_PATTERN.search(key_text):
                sanitized[key_text] = REDACTED_VALUE
            else:
                sanitized[key_text] = self._value(item, depth - 1)
        return sanitized

    def _sequence(self, items: Iterable[Any], depth: int) -> list:
        sanitized = []
        for index, item in enumerate(items):
            if index >= self.max_items:
                sanitized.append(REDACTED_VALUE)
                break
            sanitized.append(self._value(item, depth - 1))
        return sanitized


DEFAULT_SANITIZER = DetailSanitizer()


def sanitize_text(value: str, max_length: int = DEFAULT_MAX_STRING_LENGTH) -> str:
    """Redact secrets and cap a string value.

    Args:
        value: Input text value.
        max_length: Maximum length of the returned string.

    Returns:
        A redacted, length-capped string.
    """

    return DetailSanitizer(max_string_length=max_length).text(value)


def sanitize_error_details(
    details: Mapping[str, Any],
    max_depth: int = DEFAULT_MAX_DEPTH,
    max_items: int = DEFAULT_MAX_ITEMS,
    max_string_length: int = DEFAULT_MAX_STRING_LENGTH,
) -> Dict[str, Any]:
    """Sanitize a structured error details mapping.

    Args:
        details: Mapping of error details to sanitize.
        max_depth: Maximum recursion depth.
        max_items: Maximum items per collection.
        max_string_length: Maximum length for string values.

    Returns:
        A sanitized error details dictionary.
    """

    sanitizer = DetailSanitizer(
        max_depth=max_depth,
        max_items=max_items,
        max_string_length=max_string_length,
    )
    return sanitizer.details(details)


def build_exception_details(error: BaseException) -> Dict[str, Any]:
    """Build a sanitized error detail mapping from an exception."""

    return DEFAULT_SANITIZER.exception(error)
