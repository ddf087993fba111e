"""Transcript and tool data shared by the backend client and the orchestrator."""

import json
from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, Field


class MessageRole(str, Enum):
    """Role of a transcript message."""
    USER = "user"
    ASSISTANT = "assistant"
    THINKING = "thinking"
    SYSTEM = "system"
    ERROR = "error"
    TOOL = "tool"


class ChatMessage(BaseModel):
    """Represents a transcript message."""
    role: MessageRole
    content: str
    collapsed: bool = False


Transcript = List[ChatMessage]


class ToolDefinition(BaseModel):
    """A tool as advertised by the tool registry."""
    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})

    def to_backend(self) -> Dict[str, Any]:
        """Convert to the backend's function-tool format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema,
            },
        }


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_backend(cls, fragment: Dict[str, Any]) -> "ToolCall":
        """Parse a ``{"function": {"name", "arguments"}}`` fragment.

        Some backends send the arguments as a JSON string instead of an object.
        """
        function = fragment.get("function") or {}
        arguments = function.get("arguments") or {}
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError:
                arguments = {"raw": arguments}
        if not isinstance(arguments, dict):
            arguments = {"value": arguments}
        return cls(name=str(function.get("name", "")), arguments=arguments)

    def to_backend(self) -> Dict[str, Any]:
        return {"function": {"name": self.name, "arguments": self.arguments}}


def backend_role(role: MessageRole) -> str:
    """Map a transcript role onto the backend's user/assistant/system/tool roles."""
    if role is MessageRole.USER:
        return "user"
    if role in (MessageRole.ASSISTANT, MessageRole.THINKING):
        return "assistant"
    if role in (MessageRole.SYSTEM, MessageRole.ERROR):
        return "system"
    if role is MessageRole.TOOL:
        return "tool"
    raise ValueError(f"Unmapped message role: {role!r}")


def to_backend_messages(transcript: Transcript) -> List[Dict[str, Any]]:
    """Format transcript messages for a chat request."""
    return [{"role": backend_role(msg.role), "content": msg.content} for msg in transcript]
