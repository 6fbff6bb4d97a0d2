"""Scripted provider for tests, examples and offline development."""

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from agentloop.domain.context import Context
from agentloop.domain.messages import Message
from agentloop.llm.provider_response import ProviderResponse

DEFAULT_RESPONSE: Dict[str, Any] = {"message": "This is a mock response"}
DEFAULT_CHUNKS: List[Dict[str, Any]] = [
    {"delta": "Mock "},
    {"delta": "streaming "},
    {"delta": "response"},
]


@dataclass
class ProviderCall:
    """Arguments of one recorded provider call."""

    client: str
    prompt: str
    schema: Optional[Dict[str, Any]]
    options: Dict[str, Any]
    context: Context
    tools: List[Dict[str, Any]]
    messages: List[Message]
    streaming: bool = False


@dataclass
class MockProvider:
    """Replays scripted replies in order.

    Each scripted reply may be a payload (mapping, string or
    ``ProviderResponse``), an exception to raise, or a callable receiving the
    ``ProviderCall`` and returning a payload. Once the script runs out the last
    reply repeats. ``options["mock_response"]`` overrides the script for a
    single agent.

    Streams replay ``chunks`` followed, when ``stream_final`` is set, by the
    scripted reply for that turn as a ``ProviderResponse``.
    """

    responses: Sequence[Any] = field(default_factory=lambda: [DEFAULT_RESPONSE])
    chunks: Sequence[Any] = field(default_factory=lambda: list(DEFAULT_CHUNKS))
    stream_final: bool = False
    delay_ms: Optional[int] = None
    chunk_delay_ms: Optional[int] = None
    calls: List[ProviderCall] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()
        self._cursor = 0

    def call(
        self,
        client: str,
        prompt: str,
        schema: Optional[Dict[str, Any]],
        options: Mapping[str, Any],
        context: Context,
        tools: List[Dict[str, Any]],
        messages: List[Message],
    ) -> Any:
        record = self._record(client, prompt, schema, options, context, tools, messages, False)
        delay = options.get("mock_delay_ms", self.delay_ms)
        if delay:
            time.sleep(delay / 1000.0)
        if "mock_response" in options:
            return options["mock_response"]
        return self._resolve(self._next_scripted(), record)

    def stream(
        self,
        client: str,
        prompt: str,
        schema: Optional[Dict[str, Any]],
        options: Mapping[str, Any],
        context: Context,
        tools: List[Dict[str, Any]],
        messages: List[Message],
    ) -> Iterator[Any]:
        record = self._record(client, prompt, schema, options, context, tools, messages, True)
        chunks = list(options.get("mock_chunks", self.chunks))
        final = self._next_scripted() if self.stream_final else None
        chunk_delay = options.get("mock_chunk_delay_ms", self.chunk_delay_ms)
        return self._replay(chunks, final, record, chunk_delay)

    def introspect(self) -> Dict[str, Any]:
        return {
            "provider": "mock",
            "features": ["sync_call", "streaming", "configurable_responses", "tool_calling"],
            "models": ["mock:test"],
            "constraints": {"max_tokens": None},
        }

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def _replay(
        self,
        chunks: List[Any],
        final: Any,
        record: ProviderCall,
        chunk_delay: Optional[int],
    ) -> Iterator[Any]:
        for chunk in chunks:
            if chunk_delay:
                time.sleep(chunk_delay / 1000.0)
            if isinstance(chunk, BaseException):
                raise chunk
            yield chunk
        if final is not None:
            yield ProviderResponse.from_payload(self._resolve(final, record))

    def _record(
        self,
        client: str,
        prompt: str,
        schema: Optional[Dict[str, Any]],
        options: Mapping[str, Any],
        context: Context,
        tools: List[Dict[str, Any]],
        messages: List[Message],
        streaming: bool,
    ) -> ProviderCall:
        record = ProviderCall(
            client=client,
            prompt=prompt,
            schema=schema,
            options=dict(options),
            context=context,
            tools=list(tools),
            messages=list(messages),
            streaming=streaming,
        )
        with self._lock:
            self.calls.append(record)
        return record

    def _next_scripted(self) -> Any:
        if not self.responses:
            return DEFAULT_RESPONSE
        with self._lock:
            index = min(self._cursor, len(self.responses) - 1)
            self._cursor += 1
        return self.responses[index]

    @staticmethod
    def _resolve(scripted: Any, record: ProviderCall) -> Any:
        if isinstance(scripted, BaseException):
            raise scripted
        if callable(scripted) and not isinstance(scripted, type):
            return scripted(record)
        return scripted
