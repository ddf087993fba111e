"""Tool server actor: answers tool listing and tool calls over a request queue.

Each request carries a one-shot future for its reply. The orchestrator talks
to the server only through ``ToolClient``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .base import ToolRegistry, ToolResult, ToolResultStatus
from .filesystem import FileSystemTool
from .shell import ShellTool
from ..errors import ToolExecutionError, ToolRegistryUnavailable
from ..llm.base import ToolDefinition
from ..utils.config import AgentConfig

logger = logging.getLogger(__name__)


@dataclass
class ListTools:
    reply: "asyncio.Future[List[ToolDefinition]]"


@dataclass
class CallTool:
    name: str
    arguments: Dict[str, Any]
    reply: "asyncio.Future[ToolResult]"


def _answer(reply: asyncio.Future, value: Any) -> None:
    # The caller may have given up (cancelled turn); its future is then done.
    if not reply.done():
        reply.set_result(value)


class ToolServer:
    """Serves one registry until cancelled."""

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    async def serve(self, requests: "asyncio.Queue") -> None:
        while True:
            request = await requests.get()
            if isinstance(request, ListTools):
                _answer(request.reply, self.registry.list_definitions())
            elif isinstance(request, CallTool):
                logger.info("Calling tool %s", request.name)
                try:
                    result = await self.registry.execute_tool(request.name, request.arguments)
                except TypeError as e:
                    result = ToolResult(status=ToolResultStatus.ERROR, error=f"Invalid arguments: {e}")
                _answer(request.reply, result)
            else:
                logger.error("Unknown tool server request: %r", request)

    @classmethod
    def start(cls, registry: ToolRegistry, maxsize: int = 100) -> "ToolClient":
        """Spawn the server task and return a client for it."""
        requests: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        task = asyncio.create_task(cls(registry).serve(requests))
        return ToolClient(requests, task)


def build_registry(shell, config: AgentConfig) -> ToolRegistry:
    """Register the default tools for one workspace."""
    registry = ToolRegistry()
    registry.register(ShellTool(shell))
    registry.register(FileSystemTool(config.workspace_path, mount_point=config.sandbox.workdir))
    return registry


class ToolClient:
    """Caller side of the tool server."""

    def __init__(self, requests: "asyncio.Queue", task: "asyncio.Task[None]"):
        self._requests = requests
        self._task = task

    @property
    def is_running(self) -> bool:
        return not self._task.done()

    async def _request(self, request) -> Any:
        if not self.is_running:
            raise ToolRegistryUnavailable("Tool server is not running")
        await self._requests.put(request)
        done, _ = await asyncio.wait({request.reply, self._task}, return_when=asyncio.FIRST_COMPLETED)
        if request.reply not in done:
            request.reply.cancel()
            raise ToolRegistryUnavailable("Tool server dropped connection")
        return request.reply.result()

    async def list_tools(self) -> List[ToolDefinition]:
        loop = asyncio.get_running_loop()
        return await self._request(ListTools(reply=loop.create_future()))

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> str:
        """Run a tool and return its text output.

        Raises:
            ToolExecutionError: the tool ran and failed.
            ToolRegistryUnavailable: the server is gone.
        """
        loop = asyncio.get_running_loop()
        result: ToolResult = await self._request(
            CallTool(name=name, arguments=dict(arguments or {}), reply=loop.create_future())
        )
        if not result.ok:
            raise ToolExecutionError(name, result.error or result.content or "unknown error", result.suggested_actions)
        return result.content

    async def close(self) -> None:
        if self.is_running:
            self._task.cancel()
            await asyncio.wait({self._task})
