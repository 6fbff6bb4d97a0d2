from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

ToolFunction = Callable[[Dict[str, Any], Dict[str, Any]], Any]


class ParameterType(str, Enum):
    """
    JSON-schema types a tool parameter may declare.
    """

    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    ANY = "any"


_TYPE_CHECKS: Dict[ParameterType, Tuple[type, ...]] = {
    ParameterType.STRING: (str,),
    ParameterType.INTEGER: (int,),
    ParameterType.NUMBER: (int, float),
    ParameterType.BOOLEAN: (bool,),
    ParameterType.ARRAY: (list, tuple),
    ParameterType.OBJECT: (dict,),
}


@dataclass(frozen=True)
class ToolParameter:
    """
    Declared argument of a tool.
    """

    name: str
    type: ParameterType = ParameterType.STRING
    required: bool = False
    description: str = ""

    def accepts(self, value: Any) -> bool:
        """
        Checks a value against the declared type.

        Args:
            value: Argument value supplied by the model.

        Returns:
            True when the value matches the declared type.
        """
        if self.type == ParameterType.ANY:
            return True
        if isinstance(value, bool) and self.type in (
            ParameterType.INTEGER,
            ParameterType.NUMBER,
        ):
            return False
        return isinstance(value, _TYPE_CHECKS[self.type])

    def as_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {}
        if self.type != ParameterType.ANY:
            schema["type"] = self.type.value
        if self.description:
            schema["description"] = self.description
        return schema


@dataclass(frozen=True)
class Tool:
    """
    An invocable unit the model may request by name.

    The function receives ``(arguments, execution_context)`` and may return an
    ``Outcome``, a mapping, a pydantic model or any bare value.
    """

    name: str
    description: str
    function: ToolFunction
    parameters: Tuple[ToolParameter, ...] = field(default_factory=tuple)
    timeout_ms: Optional[int] = None

    @property
    def required_parameters(self) -> List[str]:
        return [param.name for param in self.parameters if param.required]

    def parameter(self, name: str) -> Optional[ToolParameter]:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    def validate_arguments(self, arguments: Mapping[str, Any]) -> Optional[str]:
        """
        Checks arguments against the declared parameters.

        Args:
            arguments: Arguments requested by the model.

        Returns:
            None when the arguments are acceptable, otherwise an error message.
        """
        missing = [name for name in self.required_parameters if name not in arguments]
        if missing:
            return f"Missing required parameters: [{', '.join(missing)}]"
        unknown = sorted(key for key in arguments if self.parameter(key) is None)
        if unknown:
            return f"Unknown parameters: [{', '.join(unknown)}]"
        for key, value in arguments.items():
            param = self.parameter(key)
            if param is not None and value is not None and not param.accepts(value):
                return f"Invalid type for parameter '{key}': expected {param.type.value}"
        return None

    def json_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {param.name: param.as_schema() for param in self.parameters},
            "required": self.required_parameters,
        }

    def as_openai_tool(self) -> Dict[str, Any]:
        """
        Returns an OpenAI-compatible tool schema definition.

        Returns:
            A dictionary describing the tool for LLM binding.
        """
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.json_schema(),
            },
        }
