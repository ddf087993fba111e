"""Tool that runs commands in the persistent sandbox shell."""

from typing import Any, Dict

from .base import BaseTool, ToolResult, ToolResultStatus
from ..errors import ShellUnavailable


class ShellTool(BaseTool):
    """Runs a shell command in the sandbox and returns its combined output."""

    def __init__(self, shell):
        super().__init__()
        self.name = "run_command"
        self.shell = shell

    @property
    def description(self) -> str:
        return (
            "Run a bash command in the persistent sandbox shell (working directory /workspace). "
            "State such as the current directory and environment variables persists between calls. "
            "Returns stdout and stderr combined."
        )

    @property
    def parameters(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {
                    "type": "string",
                    "description": "The command line to execute",
                },
            },
            "required": ["command"],
        }

    async def execute(self, **kwargs) -> ToolResult:
        command = str(kwargs.get("command", ""))
        if not command.strip():
            return ToolResult(status=ToolResultStatus.ERROR, error="Command is required")

        try:
            lines = await self.shell.collect(command)
        except ShellUnavailable as e:
            return ToolResult(
                status=ToolResultStatus.ERROR,
                error=str(e),
                suggested_actions=["Restart the workspace to get a new shell"],
            )

        output = "\n".join(lines)
        return ToolResult(
            status=ToolResultStatus.SUCCESS,
            content=output or "(no output)",
            data={"command": command, "lines": len(lines)},
        )
