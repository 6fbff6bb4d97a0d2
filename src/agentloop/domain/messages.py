import json
import secrets
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Conversation roles understood by providers."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCallRef(BaseModel):
    """A tool invocation requested by the assistant."""

    id: str = Field(description="Provider-assigned or generated call id")
    name: str = Field(description="Tool name to resolve in the registry")
    arguments: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class Message(BaseModel):
    """Immutable conversation message."""

    role: Role
    content: Optional[Any] = Field(
        default=None, description="Plain text or structured content"
    )
    tool_calls: List[ToolCallRef] = Field(default_factory=list)
    tool_call_id: Optional[str] = Field(
        default=None, description="Id of the call a tool message answers"
    )
    name: Optional[str] = Field(default=None, description="Tool name for tool messages")

    model_config = ConfigDict(frozen=True)

    @classmethod
    def system(cls, content: Any) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: Any) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(
        cls, content: Any = None, tool_calls: Optional[List[ToolCallRef]] = None
    ) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tool_calls or [])

    @classmethod
    def tool(cls, tool_call_id: str, name: str, content: str) -> "Message":
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id, name=name)

    def content_text(self) -> str:
        """Return the content as text, encoding structured content as JSON."""

        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return json.dumps(self.content, default=str, sort_keys=True)


def new_call_id() -> str:
    """Return a fresh tool call id."""

    return f"call_{secrets.token_hex(8)}"
