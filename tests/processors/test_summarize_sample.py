"""Tests for the summarize and sample processors."""

from dataclasses import dataclass

import pytest
from pydantic import BaseModel

from agentloop.domain.outcome import Outcome
from agentloop.processors.sample import Sample, SampleStrategy
from agentloop.processors.summarize import Summarize


class _Record(BaseModel):
    id: int
    name: str
    tags: list


@dataclass
class _Point:
    x: int
    y: int


def test_summarize_list() -> None:
    """Lists become a count, a short sample and a summary line."""
    summary = Summarize(sample_size=2).transform(list(range(10)))

    assert summary == {
        "type": "list",
        "count": 10,
        "sample": [0, 1],
        "summary": "List with 10 items",
    }


def test_summarize_map() -> None:
    """Mappings keep their first keys."""
    summary = Summarize(sample_size=2).transform({"a": 1, "b": 2, "c": 3})

    assert summary["type"] == "map"
    assert summary["count"] == 3
    assert summary["keys"] == ["a", "b"]
    assert summary["sample"] == {"a": 1, "b": 2}
    assert summary["summary"] == "Map with 3 keys"


def test_summarize_struct() -> None:
    """Pydantic models and dataclasses are described by their fields."""
    model_summary = Summarize().transform(_Record(id=1, name="n", tags=["x"]))
    point_summary = Summarize().transform(_Point(1, 2))

    assert model_summary["struct_name"] == "_Record"
    assert model_summary["summary"] == "_Record with 3 fields"
    assert point_summary["fields"] == {"x": 1, "y": 2}


def test_summarize_leaves_text_unless_asked() -> None:
    """Plain text only becomes an excerpt when summarize_text is set."""
    text = "word " * 100

    assert Summarize().transform(text) is text
    summary = Summarize(summarize_text=True, excerpt_length=10).transform(text)
    assert summary["excerpt"] == text[:10]
    assert summary["length"] == len(text)


def test_summarize_depth_limit() -> None:
    """Nesting beyond max_depth is replaced by a placeholder."""
    summary = Summarize(max_depth=2).transform([{"inner": [1, 2, 3]}])

    assert summary["sample"] == [{"inner": "<list with 3 items>"}]


def test_summarize_respects_max_summary_size() -> None:
    """Samples shrink until the summary fits."""
    data = ["x" * 100 for _ in range(10)]

    summary = Summarize(sample_size=5, max_summary_size=200).transform(data)

    assert len(summary["sample"]) < 5
    assert summary["count"] == 10


@pytest.mark.parametrize("option", ["sample_size", "max_summary_size"])
def test_summarize_rejects_bad_options(option: str) -> None:
    """Sizes must be positive integers."""
    with pytest.raises(ValueError, match=option):
        Summarize(**{option: 0})


def test_sample_first() -> None:
    """The first strategy keeps the head of the list."""
    sampled = Sample(3).transform(list(range(10)))

    assert sampled == {
        "items": [0, 1, 2],
        "total_count": 10,
        "sampled": True,
        "strategy": "first",
    }


def test_sample_distributed_is_deterministic() -> None:
    """The distributed strategy picks evenly spaced items, identically every time."""
    sample = Sample(4, SampleStrategy.DISTRIBUTED)

    first = sample.transform(list(range(20)))
    second = sample.transform(list(range(20)))

    assert first["items"] == [0, 5, 10, 15]
    assert first == second


def test_sample_short_lists_pass_through() -> None:
    """Lists within the sample size are untouched."""
    data = [1, 2]

    assert Sample(5).transform(data) is data
    assert Sample(5).transform({"a": 1}) == {"a": 1}


def test_sample_rejects_unknown_strategy() -> None:
    """Only deterministic strategies are accepted."""
    with pytest.raises(ValueError, match="strategy must be one of: first, distributed"):
        Sample(3, "random")  # type: ignore[arg-type]


def test_sample_skips_errors() -> None:
    """Error outcomes are never sampled."""
    error = Outcome.error("bad")

    assert Sample(1).process([("t", error)]) == [("t", error)]
