"""Tools the model can call, and the server that dispatches them."""

from .base import BaseTool, ToolRegistry, ToolResult, ToolResultStatus
from .filesystem import FileSystemTool
from .server import ToolClient, ToolServer, build_registry
from .shell import ShellTool

__all__ = [
    "BaseTool",
    "ToolRegistry",
    "ToolResult",
    "ToolResultStatus",
    "FileSystemTool",
    "ShellTool",
    "ToolClient",
    "ToolServer",
    "build_registry",
]
