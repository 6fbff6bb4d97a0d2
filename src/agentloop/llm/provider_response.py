import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from agentloop.domain.messages import ToolCallRef, new_call_id
from agentloop.domain.token_usage import TokenUsage

logger = logging.getLogger(__name__)

RAW_ARGUMENTS_KEY = "_raw_arguments"


class ProviderResponse(BaseModel):
    """Normalized reply from one provider call."""

    content: Optional[Any] = Field(
        default=None, description="Final text or structured output."
    )
    thinking: Optional[str] = Field(default=None, description="Reasoning text if exposed.")
    tool_calls: List[ToolCallRef] = Field(
        default_factory=list, description="Tool calls requested, in request order."
    )
    usage: Optional[TokenUsage] = Field(
        default=None, description="Provider usage metadata if available."
    )
    model: Optional[str] = None
    finish_reason: Optional[str] = None
    raw: Optional[Any] = Field(
        default=None, description="Raw output returned from the provider.", exclude=True
    )

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)

    @classmethod
    def from_payload(cls, payload: Union["ProviderResponse", Mapping[str, Any], str]) -> "ProviderResponse":
        """Build a response from a provider payload.

        Accepts an existing response, plain text, or a mapping in either the
        flat shape (``content``, ``tool_calls``, ``usage``...) or the
        chat-completions shape (``choices[0].message``). A mapping without any
        recognised key is treated as the structured output itself.

        Args:
            payload: Raw provider payload.

        Returns:
            A normalized ProviderResponse.
        """

        if isinstance(payload, ProviderResponse):
            return payload
        if isinstance(payload, str):
            return cls(content=payload, raw=payload)
        if not isinstance(payload, Mapping):
            return cls(content=payload, raw=payload)

        body: Mapping[str, Any] = payload
        finish_reason = payload.get("finish_reason")
        choices = payload.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], Mapping):
            body = choices[0].get("message") or {}
            finish_reason = choices[0].get("finish_reason", finish_reason)

        known = {"content", "tool_calls", "thinking", "usage", "model", "finish_reason"}
        if body is payload and not known.intersection(payload):
            return cls(content=dict(payload), raw=payload)

        return cls(
            content=body.get("content"),
            thinking=body.get("thinking") or body.get("reasoning_content"),
            tool_calls=[parse_tool_call(raw) for raw in body.get("tool_calls") or []],
            usage=TokenUsage.from_mapping(payload.get("usage")),
            model=payload.get("model"),
            finish_reason=finish_reason,
            raw=payload,
        )


class StreamChunk(BaseModel):
    """Partial output yielded while a provider streams."""

    content: Optional[str] = Field(default=None, description="Text delta.")
    thinking: Optional[str] = Field(default=None, description="Reasoning delta.")
    data: Optional[Dict[str, Any]] = Field(
        default=None, description="Structured partial payload."
    )

    @classmethod
    def from_payload(cls, payload: Any) -> "StreamChunk":
        if isinstance(payload, StreamChunk):
            return payload
        if isinstance(payload, str):
            return cls(content=payload)
        if isinstance(payload, Mapping):
            delta = payload.get("delta", payload.get("content"))
            if isinstance(delta, str) or delta is None:
                return cls(content=delta, thinking=payload.get("thinking"), data=dict(payload))
            return cls(data=dict(payload))
        return cls(data={"value": payload})


def parse_tool_call(raw: Union[ToolCallRef, Mapping[str, Any]]) -> ToolCallRef:
    """Normalize one requested tool call.

    Handles both ``{"id", "name", "arguments"}`` and the chat-completions
    ``{"id", "function": {"name", "arguments"}}`` form. JSON-encoded arguments
    are decoded; arguments that fail to decode are kept under
    ``_raw_arguments`` so validation reports them to the model. Missing ids
    are generated.
    """

    if isinstance(raw, ToolCallRef):
        return raw
    function = raw.get("function")
    source: Mapping[str, Any] = function if isinstance(function, Mapping) else raw
    name = source.get("name") or raw.get("name") or ""
    arguments = source.get("arguments", raw.get("arguments"))
    return ToolCallRef(
        id=str(raw.get("id") or new_call_id()),
        name=str(name),
        arguments=_decode_arguments(arguments, name),
    )


def _decode_arguments(arguments: Any, name: str) -> Dict[str, Any]:
    if arguments is None or arguments == "":
        return {}
    if isinstance(arguments, Mapping):
        return dict(arguments)
    if isinstance(arguments, str):
        try:
            decoded = json.loads(arguments)
        except json.JSONDecodeError:
            logger.warning(
                "Tool call arguments are not valid JSON", extra={"tool": name}
            )
            return {RAW_ARGUMENTS_KEY: arguments}
        if isinstance(decoded, dict):
            return decoded
    return {RAW_ARGUMENTS_KEY: arguments}
