"""Application context: the long-lived collaborators shared by the front ends."""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Tuple

from .events import EventBus, WorkspaceRestarted
from .llm.client import OllamaClient
from .memory.store import SessionStore
from .sandbox.docker import ensure_sandbox, restart_sandbox, shell_command
from .shell.session import ShellHandle
from .tools.server import ToolClient, ToolServer, build_registry
from .utils.config import AgentConfig, ConfigManager

logger = logging.getLogger(__name__)


class AppContext:
    """Built once at startup and passed to whatever needs it.

    The shell handle and tool client are replaced together when the
    workspace changes; ``shell`` and ``tools`` always name the live pair.
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        client: Optional[OllamaClient] = None,
        store: Optional[SessionStore] = None,
        events: Optional[EventBus] = None,
    ):
        self.config_manager = config_manager
        config = config_manager.config
        # EventBus defines __len__, so an empty bus is falsy.
        self.events = events if events is not None else EventBus(config.event_queue_size)
        if client is None:
            client = OllamaClient(config.llm.chat_url, config.llm.model, config.llm.request_timeout)
        self.client = client
        self.store = store if store is not None else SessionStore()
        self.shell: Optional[ShellHandle] = None
        self.tools: Optional[ToolClient] = None

    @property
    def config(self) -> AgentConfig:
        return self.config_manager.config

    def spawn_workspace_actors(self) -> Tuple[ShellHandle, ToolClient]:
        """Start a shell actor and a tool server bound to it."""
        argv, cwd = shell_command(self.config)
        shell = ShellHandle.start(self.events, argv, cwd)
        tools = ToolServer.start(build_registry(shell, self.config))
        return shell, tools

    async def start_workspace(self) -> Tuple[ShellHandle, ToolClient]:
        """Provision the sandbox and start the initial shell and tool server.

        Raises:
            SandboxError: the container could not be started.
        """
        await self.client.initialize()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, ensure_sandbox, self.config)
        self.shell, self.tools = self.spawn_workspace_actors()
        logger.info("Workspace ready at %s", self.config.workspace_path)
        return self.shell, self.tools

    async def restart_workspace(self, path: Path) -> None:
        """Rebuild the sandbox around ``path`` and announce the new handles.

        The old pair keeps serving until the consumer of the event bus swaps
        in the handles carried by ``WorkspaceRestarted``.
        """
        self.config.workspace_path = path
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, restart_sandbox, self.config)
        shell, tools = self.spawn_workspace_actors()
        await self.events.publish(WorkspaceRestarted(shell=shell, tools=tools))

    async def close(self) -> None:
        """Stop the workspace actors and release the backend and store."""
        if self.tools is not None:
            await self.tools.close()
        if self.shell is not None:
            await self.shell.close()
        await self.client.close()
        await self.store.close()
