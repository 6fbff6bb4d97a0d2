"""Prompt rendering collaborators for the runtime loop."""

import json
from string import Template
from typing import Any, Dict, Mapping, Optional, Protocol

from agentloop.domain.context import Context
from agentloop.domain.exceptions import ConfigurationError

OUTPUT_FORMAT_INSTRUCTION = "Return your response as valid JSON matching the specified schema."


class PromptRenderer(Protocol):
    """Renders an agent instruction for one iteration."""

    def render(
        self,
        template: str,
        arguments: Mapping[str, Any],
        context: Context,
        schema: Optional[Dict[str, Any]] = None,
    ) -> str:
        ...


class TemplatePromptRenderer:
    """
    Renders ``$name`` placeholders with ``string.Template``.

    Available variables are the invocation arguments, ``iteration`` (the
    number about to run) and ``output_format`` (a JSON instruction, empty when
    the agent has no output schema). Non-string arguments are rendered as JSON.

    Args:
        strict: Raise on unknown placeholders instead of leaving them in place.
    """

    def __init__(self, strict: bool = True) -> None:
        self.strict = strict

    def render(
        self,
        template: str,
        arguments: Mapping[str, Any],
        context: Context,
        schema: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Renders the template.

        Args:
            template: Instruction text with ``$name`` placeholders.
            arguments: Invocation arguments.
            context: Context accumulated so far.
            schema: Output schema, if the agent has one.

        Returns:
            The rendered instruction.

        Raises:
            ConfigurationError: If a placeholder has no value in strict mode.
        """
        variables = {str(key): _as_text(value) for key, value in arguments.items()}
        variables["iteration"] = str(context.next_iteration_number)
        variables["output_format"] = OUTPUT_FORMAT_INSTRUCTION if schema else ""
        compiled = Template(template)
        if not self.strict:
            return compiled.safe_substitute(variables)
        try:
            return compiled.substitute(variables)
        except (KeyError, ValueError) as exc:
            raise ConfigurationError(
                f"Prompt template render failed: {exc}",
                details={"placeholder": str(exc)},
            ) from exc


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str, sort_keys=True)
