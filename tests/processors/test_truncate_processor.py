"""Tests for the truncate processor."""

from dataclasses import dataclass
from types import MappingProxyType

import pytest
from pydantic import BaseModel

from agentloop.domain.outcome import Outcome
from agentloop.processors.truncate import DEFAULT_MARKER, TRUNCATED_KEY, Truncate


@pytest.mark.parametrize("length", [0, 1, 9, 10, 11, 250])
def test_text_bound(length: int) -> None:
    """Truncated text never exceeds max_size plus the marker."""
    text = "a" * length

    result = Truncate(10).transform(text)

    assert len(result) <= 10 + len(DEFAULT_MARKER)
    if length <= 10:
        assert result is text


def test_text_keeps_multibyte_characters_whole() -> None:
    """Text is cut by characters, not bytes."""
    result = Truncate(3, marker="~").transform("ééééé")

    assert result == "ééé~"


def test_bytes_are_decoded_before_cutting() -> None:
    """Binary payloads are cut as text."""
    result = Truncate(2, marker="~").transform("日本語".encode("utf-8"))

    assert result == "日本~"


def test_list_keeps_items_plus_marker() -> None:
    """Sequences keep max_size items and a trailing marker element."""
    assert Truncate(2).transform([1, 2, 3, 4]) == [1, 2, DEFAULT_MARKER]


def test_mapping_keeps_keys_plus_flag() -> None:
    """Mappings keep max_size keys and gain a __truncated__ entry."""
    result = Truncate(1).transform({"a": 1, "b": 2})

    assert result == {"a": 1, TRUNCATED_KEY: DEFAULT_MARKER}


def test_any_mapping_or_model_over_the_limit_is_cut() -> None:
    """Read-only mappings, models and dataclasses are bounded like dicts."""

    class _Row(BaseModel):
        a: int
        b: int
        c: int

    @dataclass
    class _Point:
        x: int
        y: int
        z: int

    proxy = MappingProxyType({"a": 1, "b": 2, "c": 3})

    assert Truncate(2).transform(proxy) == {"a": 1, "b": 2, TRUNCATED_KEY: DEFAULT_MARKER}
    assert Truncate(1).transform(_Row(a=1, b=2, c=3)) == {"a": 1, TRUNCATED_KEY: DEFAULT_MARKER}
    assert Truncate(2).transform(_Point(1, 2, 3)) == {"x": 1, "y": 2, TRUNCATED_KEY: DEFAULT_MARKER}


def test_small_data_is_identical() -> None:
    """Data at or under the limit is the same object."""
    data = {"a": 1}

    assert Truncate(5).transform(data) is data


def test_error_outcomes_are_preserved() -> None:
    """Errors pass through verbatim for diagnostics."""
    error = Outcome.error("x" * 5000)
    results = [("big", Outcome.ok("y" * 50)), ("bad", error)]

    processed = Truncate(10).process(results)

    assert processed[1] == ("bad", error)
    assert processed[0][1].value == "y" * 10 + DEFAULT_MARKER


@pytest.mark.parametrize("size", [0, -5, "10", None])
def test_invalid_size_fails_fast(size: object) -> None:
    """Non-positive or non-integer sizes are configuration errors."""
    with pytest.raises(ValueError, match="max_size must be a positive integer"):
        Truncate(size)  # type: ignore[arg-type]
