import json
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Sequence, Type, Union

from pydantic import BaseModel

from agentloop.config import AgentConfig
from agentloop.config_provider import ConfigProvider
from agentloop.domain.outcome import Outcome
from agentloop.domain.result import Result
from agentloop.domain.tool import Tool
from agentloop.engine.prompt_renderer import PromptRenderer, TemplatePromptRenderer
from agentloop.engine.runtime import AgentRuntime
from agentloop.infra.tool_registry import ToolRegistry
from agentloop.llm.provider import Provider, provider_name
from agentloop.telemetry.observer import LoggingObserver, Observer

DEFAULT_INSTRUCTION = "You are a helpful assistant.\n$output_format"


class Agent:
    """
    A configured agent: instruction, provider, tools, hooks and options.

    An Agent is built once and shared; every invocation gets its own Context
    inside the runtime.
    """

    def __init__(
        self,
        name: str,
        client: str,
        provider: Provider,
        instruction: str = DEFAULT_INSTRUCTION,
        output_model: Optional[Type[BaseModel]] = None,
        schema: Optional[Dict[str, Any]] = None,
        tools: Union[ToolRegistry, Iterable[Tool]] = (),
        hooks: Sequence[Any] = (),
        config: Optional[AgentConfig] = None,
        client_options: Optional[Mapping[str, Any]] = None,
        renderer: Optional[PromptRenderer] = None,
        observer: Optional[Observer] = None,
    ):
        """
        Initializes the agent definition.

        Args:
            name: Agent identifier used in events and logs.
            client: Model identifier passed to the provider, e.g. ``"openai:gpt-4o"``.
            provider: Provider capability used for every call.
            instruction: Prompt template rendered each iteration.
            output_model: Pydantic model validating the final output.
            schema: JSON schema of the output; derived from ``output_model`` when omitted.
            tools: Tools the model may call.
            hooks: Hook objects run by the hook pipeline.
            config: Runtime options; loaded through ConfigProvider when omitted.
            client_options: Provider specific options sent with every call.
            renderer: Prompt renderer; ``TemplatePromptRenderer`` by default.
            observer: Event sink; events are logged when omitted.
        """
        self.name = name
        self.client = client
        self.provider = provider
        self.instruction = instruction
        self.output_model = output_model
        if schema is None and output_model is not None:
            schema = output_model.model_json_schema()
        self.schema = schema
        self.tools = tools if isinstance(tools, ToolRegistry) else ToolRegistry(tools)
        self.hooks = list(hooks)
        self.config = config or ConfigProvider().load()
        self.client_options: Dict[str, Any] = dict(client_options or {})
        self.renderer = renderer or TemplatePromptRenderer()
        self.observer = observer or LoggingObserver()

    @property
    def provider_name(self) -> str:
        return provider_name(self.provider)

    def parse_output(self, content: Any) -> Any:
        """
        Validates the final provider content against ``output_model``.

        Args:
            content: Final content, either structured or JSON text.

        Returns:
            The validated model instance, or ``content`` unchanged when the
            agent has no output model.

        Raises:
            ValueError: If the content is not valid JSON text.
            pydantic.ValidationError: If the content does not match the model.
        """
        if self.output_model is None:
            return content
        if isinstance(content, self.output_model):
            return content
        if isinstance(content, (str, bytes)):
            return self.output_model.model_validate(json.loads(content))
        return self.output_model.model_validate(content)

    def call(self, arguments: Optional[Mapping[str, Any]] = None, **options: Any) -> Outcome:
        """
        Runs one invocation and returns ``Outcome.ok(Result)`` or ``Outcome.error(AgentLoopError)``.
        """
        return AgentRuntime(self).call(arguments, **options)

    def call_or_raise(self, arguments: Optional[Mapping[str, Any]] = None, **options: Any) -> Result:
        return AgentRuntime(self).call_or_raise(arguments, **options)

    def stream(self, arguments: Optional[Mapping[str, Any]] = None, **options: Any) -> Iterator[Any]:
        """
        Runs one streaming invocation, yielding StreamEvents.
        """
        return AgentRuntime(self).stream(arguments, **options)
