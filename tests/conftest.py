"""Shared fixtures for agentloop tests."""

from typing import Any, Callable, Dict, Iterable, List, Optional

import pytest

from agentloop.config import AgentConfig
from agentloop.core.agent import Agent
from agentloop.domain.tool import ParameterType, Tool, ToolParameter
from agentloop.llm.mock_provider import MockProvider
from agentloop.telemetry.observer import RecordingObserver
from agentloop.telemetry.telemetry import Telemetry


class Replies:
    """
    Builds scripted provider payloads.
    """

    @staticmethod
    def tool_request(
        name: str, arguments: Optional[Dict[str, Any]] = None, call_id: Optional[str] = None
    ) -> Dict[str, Any]:
        return {"id": call_id or f"call_{name}", "name": name, "arguments": arguments or {}}

    @staticmethod
    def tools(*requests: Dict[str, Any], usage: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"content": None, "tool_calls": list(requests)}
        if usage is not None:
            payload["usage"] = usage
        return payload

    @staticmethod
    def final(content: Any, usage: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"content": content, "finish_reason": "stop"}
        if usage is not None:
            payload["usage"] = usage
        return payload


@pytest.fixture
def replies() -> Replies:
    return Replies()


@pytest.fixture
def recorder() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def telemetry(recorder: RecordingObserver) -> Telemetry:
    return Telemetry(
        recorder, {"agent": "test_agent", "provider": "mock", "client": "mock:test"}
    )


@pytest.fixture
def echo_tool() -> Tool:
    return Tool(
        name="echo",
        description="Echo the given text",
        function=lambda arguments, context: {"echo": arguments["text"]},
        parameters=(ToolParameter("text", ParameterType.STRING, required=True),),
    )


@pytest.fixture
def make_agent(recorder: RecordingObserver) -> Callable[..., Agent]:
    """
    Returns a factory building agents backed by a scripted MockProvider.
    """

    def factory(
        responses: List[Any],
        tools: Iterable[Tool] = (),
        hooks: Iterable[Any] = (),
        instruction: str = "You are a test agent.",
        **config: Any,
    ) -> Agent:
        return Agent(
            name="test_agent",
            client="mock:test",
            provider=MockProvider(responses=list(responses)),
            instruction=instruction,
            tools=tools,
            hooks=list(hooks),
            config=AgentConfig(**config),
            observer=recorder,
        )

    return factory
