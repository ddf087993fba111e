"""Base classes for tools exposed to the model."""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..llm.base import ToolDefinition

logger = logging.getLogger(__name__)


class ToolResultStatus(str, Enum):
    """Status of tool execution."""
    SUCCESS = "success"
    ERROR = "error"


class ToolResult(BaseModel):
    """Result of a tool execution."""
    status: ToolResultStatus
    content: str = ""
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    suggested_actions: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == ToolResultStatus.SUCCESS


class BaseTool(ABC):
    """Abstract base class for all tools."""

    def __init__(self):
        self.name = self.__class__.__name__.replace("Tool", "").lower()

    @property
    @abstractmethod
    def description(self) -> str:
        """Tool description for the model."""
        pass

    @property
    @abstractmethod
    def parameters(self) -> Dict[str, Any]:
        """JSON schema for tool parameters."""
        pass

    @abstractmethod
    async def execute(self, **kwargs) -> ToolResult:
        """Execute the tool with given parameters."""
        pass

    def to_definition(self) -> ToolDefinition:
        return ToolDefinition(name=self.name, description=self.description, input_schema=self.parameters)

    def validate_parameters(self, **kwargs) -> Dict[str, Any]:
        """Check required parameters are present."""
        missing = [key for key in self.parameters.get("required", []) if key not in kwargs]
        if missing:
            raise ValueError(f"Missing required parameter(s): {', '.join(missing)}")
        return kwargs

    async def safe_execute(self, **kwargs) -> ToolResult:
        """Execute the tool, turning exceptions into an error result."""
        try:
            validated_params = self.validate_parameters(**kwargs)
            return await self.execute(**validated_params)
        except Exception as e:
            logger.exception("Tool %s failed", self.name)
            return ToolResult(
                status=ToolResultStatus.ERROR,
                error=str(e),
                suggested_actions=["Check parameters and try again"],
            )


class ToolRegistry:
    """Registry for managing available tools."""

    def __init__(self):
        self._tools: Dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        """Register a tool."""
        self._tools[tool.name] = tool

    def unregister(self, tool_name: str) -> None:
        """Unregister a tool."""
        if tool_name in self._tools:
            del self._tools[tool_name]

    def get_tool(self, tool_name: str) -> Optional[BaseTool]:
        """Get a tool by name."""
        return self._tools.get(tool_name)

    def list_tools(self) -> List[str]:
        """List all registered tool names."""
        return list(self._tools.keys())

    def list_definitions(self) -> List[ToolDefinition]:
        """Get definitions for all tools, in registration order."""
        return [tool.to_definition() for tool in self._tools.values()]

    async def execute_tool(self, tool_name: str, arguments: Dict[str, Any]) -> ToolResult:
        """Execute a tool by name."""
        tool = self.get_tool(tool_name)
        if not tool:
            return ToolResult(
                status=ToolResultStatus.ERROR,
                error=f"Tool '{tool_name}' not found",
                suggested_actions=[f"Available tools: {', '.join(self.list_tools())}"],
            )
        return await tool.safe_execute(**arguments)
