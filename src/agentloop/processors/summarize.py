import json
from typing import Any, Dict, List, Mapping

from agentloop.processors.base import ResultProcessor, require_positive_int, struct_fields

DEFAULT_SAMPLE_SIZE = 3
DEFAULT_MAX_SUMMARY_SIZE = 1000
DEFAULT_MAX_DEPTH = 3
DEFAULT_EXCERPT_LENGTH = 200


class Summarize(ResultProcessor):
    """Replaces structured tool results with a compact description.

    Lists become ``{type, count, sample, summary}``, mappings become
    ``{type, count, keys, sample, summary}`` and pydantic models or dataclasses
    become ``{type, struct_name, fields, summary}``. Text is left alone unless
    ``summarize_text`` is set, in which case it becomes
    ``{type, length, excerpt, summary}``.

    Args:
        sample_size: Items, keys or fields copied into each summary.
        max_summary_size: Upper bound on the JSON length of one summary; samples
            shrink until the summary fits.
        max_depth: Nesting depth kept inside samples.
        summarize_text: Also summarize plain text results.
        excerpt_length: Characters kept from text values.
    """

    name = "summarize"

    def __init__(
        self,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
        max_summary_size: int = DEFAULT_MAX_SUMMARY_SIZE,
        max_depth: int = DEFAULT_MAX_DEPTH,
        summarize_text: bool = False,
        excerpt_length: int = DEFAULT_EXCERPT_LENGTH,
    ) -> None:
        self.sample_size = require_positive_int("sample_size", sample_size)
        self.max_summary_size = require_positive_int("max_summary_size", max_summary_size)
        self.max_depth = require_positive_int("max_depth", max_depth)
        self.summarize_text = summarize_text
        self.excerpt_length = require_positive_int("excerpt_length", excerpt_length)

    def transform(self, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            return self._fit(self._summarize_list(list(data)))
        if isinstance(data, Mapping):
            return self._fit(self._summarize_map(data))
        fields = struct_fields(data)
        if fields is not None:
            return self._fit(self._summarize_struct(type(data).__name__, fields))
        if isinstance(data, str) and self.summarize_text:
            return self._summarize_text(data)
        return data

    def _summarize_list(self, items: List[Any]) -> Dict[str, Any]:
        return {
            "type": "list",
            "count": len(items),
            "sample": [self._compact(item, self.max_depth - 1) for item in items[: self.sample_size]],
            "summary": f"List with {len(items)} items",
        }

    def _summarize_map(self, data: Mapping[Any, Any]) -> Dict[str, Any]:
        keys = list(data)[: self.sample_size]
        return {
            "type": "map",
            "count": len(data),
            "keys": keys,
            "sample": {key: self._compact(data[key], self.max_depth - 1) for key in keys},
            "summary": f"Map with {len(data)} keys",
        }

    def _summarize_struct(self, struct_name: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "type": "struct",
            "struct_name": struct_name,
            "fields": {
                name: self._compact(value, self.max_depth - 1)
                for name, value in list(fields.items())[: self.sample_size]
            },
            "summary": f"{struct_name} with {len(fields)} fields",
        }

    def _summarize_text(self, text: str) -> Dict[str, Any]:
        return {
            "type": "text",
            "length": len(text),
            "excerpt": text[: self.excerpt_length],
            "summary": f"Text with {len(text)} characters",
        }

    def _compact(self, value: Any, depth: int) -> Any:
        if isinstance(value, str):
            if len(value) > self.excerpt_length:
                return value[: self.excerpt_length] + "..."
            return value
        if isinstance(value, (list, tuple)):
            if depth <= 0:
                return f"<list with {len(value)} items>"
            return [self._compact(item, depth - 1) for item in list(value)[: self.sample_size]]
        if isinstance(value, Mapping):
            if depth <= 0:
                return f"<map with {len(value)} keys>"
            return {
                key: self._compact(value[key], depth - 1)
                for key in list(value)[: self.sample_size]
            }
        fields = struct_fields(value)
        if fields is not None:
            if depth <= 0:
                return f"<{type(value).__name__}>"
            return self._compact(fields, depth)
        return value

    def _fit(self, summary: Dict[str, Any]) -> Dict[str, Any]:
        """Shrink the sample until the summary fits ``max_summary_size``."""

        sample_key = "fields" if summary["type"] == "struct" else "sample"
        while _json_size(summary) > self.max_summary_size and summary[sample_key]:
            sample = summary[sample_key]
            if isinstance(sample, list):
                summary[sample_key] = sample[:-1]
            else:
                kept = list(sample)[:-1]
                summary[sample_key] = {key: sample[key] for key in kept}
                if "keys" in summary:
                    summary["keys"] = summary["keys"][: len(kept)]
        return summary


def _json_size(value: Any) -> int:
    return len(json.dumps(value, default=str, skipkeys=True))
