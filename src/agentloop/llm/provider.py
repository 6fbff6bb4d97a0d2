from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Union

from agentloop.domain.context import Context
from agentloop.domain.messages import Message
from agentloop.domain.outcome import Outcome
from agentloop.llm.provider_response import ProviderResponse, StreamChunk

StreamItem = Union[StreamChunk, ProviderResponse, Mapping[str, Any], str]
ProviderPayload = Union[ProviderResponse, Mapping[str, Any], str]


class Provider(Protocol):
    """Capability for calling an LLM backend.

    Implementations may return ``Outcome.ok(payload)`` / ``Outcome.error(reason)``
    or a bare payload, and may raise; the runtime normalizes all of these.
    Streams yield text deltas or chunks and may end with a full
    ``ProviderResponse`` carrying tool calls and usage.
    """

    def call(
        self,
        client: str,
        prompt: str,
        schema: Optional[Dict[str, Any]],
        options: Mapping[str, Any],
        context: Context,
        tools: List[Dict[str, Any]],
        messages: List[Message],
    ) -> Union[Outcome, ProviderPayload]:
        """Execute one provider call.

        Args:
            client: Model/client identifier, e.g. ``"openai:gpt-4o"``.
            prompt: Rendered instruction.
            schema: JSON schema of the expected output, if any.
            options: Provider specific options.
            context: Context accumulated so far.
            tools: Function manifest of the available tools.
            messages: Messages to send, oldest first.

        Returns:
            The provider reply, optionally wrapped in an Outcome.
        """

        ...

    def stream(
        self,
        client: str,
        prompt: str,
        schema: Optional[Dict[str, Any]],
        options: Mapping[str, Any],
        context: Context,
        tools: List[Dict[str, Any]],
        messages: List[Message],
    ) -> Union[Outcome, Iterable[StreamItem]]:
        """Start a streaming provider call.

        Returns:
            A lazy iterable of stream items, optionally wrapped in an Outcome.
        """

        ...


def provider_name(provider: Any) -> str:
    """Short identifier for a provider used in events and result metadata."""

    introspect = getattr(provider, "introspect", None)
    if callable(introspect):
        info = introspect()
        if isinstance(info, Mapping) and info.get("provider"):
            return str(info["provider"])
    return provider.__class__.__name__
