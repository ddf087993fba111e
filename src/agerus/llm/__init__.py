"""Backend protocol: transcript model, stream decoder and chat client."""

from .base import ChatMessage, MessageRole, ToolCall, ToolDefinition, backend_role, to_backend_messages
from .client import OllamaClient
from .decoder import StreamDecoder

__all__ = [
    "ChatMessage",
    "MessageRole",
    "ToolCall",
    "ToolDefinition",
    "backend_role",
    "to_backend_messages",
    "OllamaClient",
    "StreamDecoder",
]
