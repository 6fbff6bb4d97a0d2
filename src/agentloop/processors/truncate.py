from typing import Any, Mapping

from agentloop.processors.base import ResultProcessor, is_large, require_positive_int, struct_fields

DEFAULT_MAX_SIZE = 1000
DEFAULT_MARKER = "... [truncated]"
TRUNCATED_KEY = "__truncated__"


class Truncate(ResultProcessor):
    """Cuts oversized tool results down to ``max_size``.

    Text is cut to ``max_size`` characters (code points, so multi-byte text is
    never split mid-character) and suffixed with the marker. Sequences keep
    ``max_size`` items plus a trailing marker item. Mappings, pydantic models
    and dataclasses become a dict of their first ``max_size`` keys plus a
    ``__truncated__`` entry. Data at or under the limit is returned as the
    same object.

    Args:
        max_size: Positive limit in characters, items or keys.
        marker: Text that flags truncated data.
    """

    name = "truncate"

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE, marker: str = DEFAULT_MARKER) -> None:
        self.max_size = require_positive_int("max_size", max_size)
        self.marker = marker

    def transform(self, data: Any) -> Any:
        if not is_large(data, self.max_size):
            return data
        if isinstance(data, str):
            return data[: self.max_size] + self.marker
        if isinstance(data, bytes):
            text = data.decode("utf-8", errors="replace")
            if len(text) <= self.max_size:
                return data
            return text[: self.max_size] + self.marker
        if isinstance(data, (list, tuple)):
            return list(data[: self.max_size]) + [self.marker]
        mapping = data if isinstance(data, Mapping) else struct_fields(data)
        if mapping is not None:
            kept = {key: mapping[key] for key in list(mapping)[: self.max_size]}
            kept[TRUNCATED_KEY] = self.marker
            return kept
        return data
