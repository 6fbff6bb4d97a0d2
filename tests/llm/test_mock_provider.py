"""Tests for the scripted mock provider."""

from agentloop.domain.context import Context
from agentloop.llm.mock_provider import DEFAULT_RESPONSE, MockProvider, ProviderCall
from agentloop.llm.provider import provider_name
from agentloop.llm.provider_response import ProviderResponse


def _call(provider: MockProvider, **options: object) -> object:
    return provider.call("mock:test", "prompt", None, options, Context.new(), [], [])


def test_replies_in_order_then_repeats_last() -> None:
    """The script is consumed in order and the last reply repeats."""
    provider = MockProvider(responses=["one", "two"])

    assert [_call(provider) for _ in range(3)] == ["one", "two", "two"]
    assert provider.call_count == 3


def test_default_response() -> None:
    """Without a script the default reply is used."""
    assert _call(MockProvider(responses=[])) == DEFAULT_RESPONSE


def test_mock_response_option_overrides_script() -> None:
    """Per-call options can force a reply."""
    provider = MockProvider(responses=["scripted"])

    assert _call(provider, mock_response="forced") == "forced"


def test_callable_replies_see_the_call() -> None:
    """Scripted callables receive the recorded call."""

    def reply(call: ProviderCall) -> str:
        return f"{call.client}:{call.prompt}"

    assert _call(MockProvider(responses=[reply])) == "mock:test:prompt"


def test_stream_final_reply() -> None:
    """Streams can end with a full response."""
    provider = MockProvider(responses=[{"content": "done"}], chunks=["a", "b"], stream_final=True)

    items = list(provider.stream("mock:test", "p", None, {}, Context.new(), [], []))

    assert items[:2] == ["a", "b"]
    assert isinstance(items[-1], ProviderResponse)
    assert items[-1].content == "done"
    assert provider.calls[0].streaming


def test_provider_name() -> None:
    """Providers are named by introspection, falling back to the class name."""

    class Bare:
        pass

    assert provider_name(MockProvider()) == "mock"
    assert provider_name(Bare()) == "Bare"
