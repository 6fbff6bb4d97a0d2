"""Shared contract and sizing helpers for tool-result processors."""

from abc import ABC, abstractmethod
from dataclasses import fields, is_dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel

from agentloop.domain.outcome import Outcome

ResultEntry = Tuple[str, Outcome]


def require_positive_int(name: str, value: Any) -> int:
    """Fail fast on sizes that are not positive integers.

    Raises:
        ValueError: If ``value`` is not an int greater than zero.
    """

    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{name} must be a positive integer, got: {value!r}")
    return value


def estimate_size(data: Any) -> int:
    """Size of ``data`` in the unit truncation works in.

    Characters for text, items for sequences, keys for mappings, fields for
    models and dataclasses. Anything else counts as zero.
    """

    if isinstance(data, (str, bytes)):
        return len(data)
    if isinstance(data, (list, tuple)):
        return len(data)
    if isinstance(data, Mapping):
        return len(data)
    struct = struct_fields(data)
    if struct is not None:
        return len(struct)
    return 0


def is_large(data: Any, threshold: int) -> bool:
    return estimate_size(data) > threshold


def struct_fields(data: Any) -> Optional[Dict[str, Any]]:
    """Field mapping of a pydantic model or dataclass instance, else None."""

    if isinstance(data, BaseModel):
        return {name: getattr(data, name) for name in type(data).model_fields}
    if is_dataclass(data) and not isinstance(data, type):
        return {f.name: getattr(data, f.name) for f in fields(data)}
    return None


class ResultProcessor(ABC):
    """Transforms the payload of successful tool results.

    Subclasses validate their options in ``__init__`` and implement
    ``transform`` for one payload. Error outcomes always pass through
    untouched so diagnostics survive.
    """

    name: str = "processor"

    def process(self, results: Sequence[ResultEntry]) -> List[ResultEntry]:
        """Apply ``transform`` to every successful entry, preserving order."""

        processed: List[ResultEntry] = []
        for tool_name, outcome in results:
            if outcome.is_ok:
                transformed = self.transform(outcome.value)
                if transformed is not outcome.value:
                    outcome = Outcome.ok(transformed)
            processed.append((tool_name, outcome))
        return processed

    @abstractmethod
    def transform(self, data: Any) -> Any:
        """Return the reduced form of ``data``, or ``data`` itself when unchanged."""
