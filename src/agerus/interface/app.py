"""Application state: the transcript, the terminal buffer and the running turn.

Front ends feed every bus event through ``App.handle_event`` and render from
the resulting state. All user actions go through the methods below.
"""

import asyncio
import logging
import os
import sqlite3
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Deque, List, Optional

from ..context import AppContext
from ..core.agent import AgentOrchestrator
from ..errors import BackendConnectionError, SandboxError, ShellUnavailable
from ..events import (
    AppEvent,
    CommandEnd,
    CommandStart,
    Error,
    ModelsLoaded,
    TerminalLine,
    Thinking,
    Token,
    TurnFinished,
    WorkspaceRestarted,
)
from ..llm.base import ChatMessage, MessageRole, Transcript

logger = logging.getLogger(__name__)

MAX_TERMINAL_LINES = 2000
SUMMARY_LIMIT = 200


def summarize_output(output: str) -> str:
    """Shorten long tool output for the chat view; the terminal shows all of it."""
    if len(output) > SUMMARY_LIMIT:
        return f"Output ({len(output.encode('utf-8'))} bytes) sent to terminal."
    return output


def default_session_name() -> str:
    return datetime.now().strftime("chat_%Y-%m-%d_%H-%M-%S")


class App:
    """Folds bus events into application state and runs user actions."""

    def __init__(self, context: AppContext, session_name: Optional[str] = None):
        self.context = context
        self.orchestrator = AgentOrchestrator(context.client, context.events)
        self.messages: Transcript = []
        self.terminal_lines: Deque[str] = deque(maxlen=MAX_TERMINAL_LINES)
        self.available_models: List[str] = []
        self.current_session = session_name or default_session_name()
        self.is_processing = False
        self.turn_task: Optional["asyncio.Task"] = None
        self._background: List["asyncio.Task"] = []

    @property
    def turn_running(self) -> bool:
        return self.turn_task is not None and not self.turn_task.done()

    # --- Transcript ---

    def add_message(self, content: str, role: MessageRole, collapsed: bool = False) -> ChatMessage:
        message = ChatMessage(role=role, content=content, collapsed=collapsed)
        self.messages.append(message)
        return message

    def append_fragment(self, text: str, role: MessageRole) -> None:
        """Extend the last message when it has the same role, else start one."""
        if self.messages and self.messages[-1].role == role:
            self.messages[-1].content += text
        else:
            self.add_message(text, role, collapsed=role == MessageRole.THINKING)

    async def save_current_session(self) -> None:
        try:
            await self.context.store.save_session(self.current_session, self.messages)
        except sqlite3.Error as e:
            logger.error("Auto-save of %s failed: %s", self.current_session, e)
            self.add_message(f"Auto-save failed: {e}", MessageRole.ERROR)

    # --- Events ---

    async def handle_event(self, event: AppEvent) -> None:
        if isinstance(event, Token):
            self.append_fragment(event.text, MessageRole.ASSISTANT)
        elif isinstance(event, Thinking):
            self.append_fragment(event.text, MessageRole.THINKING)
        elif isinstance(event, CommandStart):
            self.add_message(f"🛠️ {event.label}", MessageRole.SYSTEM)
        elif isinstance(event, CommandEnd):
            self.add_message(summarize_output(event.summary), MessageRole.SYSTEM)
        elif isinstance(event, TerminalLine):
            self.terminal_lines.append(event.text)
        elif isinstance(event, Error):
            # Some errors are mid-stream notices; only TurnFinished ends a turn.
            self.add_message(event.text, MessageRole.ERROR)
            await self.save_current_session()
        elif isinstance(event, TurnFinished):
            # A cancelled turn reports late; don't let it clear a newer one.
            if self.turn_task is not None and self.turn_task.done():
                self.turn_task = None
            self.is_processing = self.turn_running
            await self.save_current_session()
        elif isinstance(event, WorkspaceRestarted):
            await self._swap_workspace(event)
        elif isinstance(event, ModelsLoaded):
            self.available_models = list(event.models)

    async def _swap_workspace(self, event: WorkspaceRestarted) -> None:
        old_shell, old_tools = self.context.shell, self.context.tools
        self.context.shell, self.context.tools = event.shell, event.tools
        if old_tools is not None:
            await old_tools.close()
        if old_shell is not None:
            await old_shell.close()
        self.add_message("Workspace changed successfully.", MessageRole.SYSTEM)
        self.terminal_lines.append("--- Workspace Changed / Shell Restarted ---")

    # --- Actions ---

    def submit(self, text: str) -> bool:
        """Start a turn for ``text``. Returns False when nothing was started."""
        text = text.strip()
        if not text or self.turn_running:
            return False
        if self.context.tools is None:
            self.add_message("Workspace is not running.", MessageRole.ERROR)
            return False

        self.add_message(text, MessageRole.USER)
        self.is_processing = True
        snapshot = [message.model_copy() for message in self.messages]
        self.turn_task = asyncio.create_task(self.orchestrator.run_turn(snapshot, self.context.tools))
        return True

    async def abort(self) -> bool:
        """Cancel the running turn. Whatever it already produced stays."""
        if not self.turn_running:
            return False
        task, self.turn_task = self.turn_task, None
        task.cancel()
        await asyncio.wait({task})
        self.is_processing = False
        self.add_message("🛑 Cancelled by user.", MessageRole.SYSTEM)
        await self.save_current_session()
        return True

    async def send_to_shell(self, text: str) -> None:
        """Type a line into the shell; its output only reaches the terminal buffer."""
        if self.context.shell is None:
            self.add_message("Shell is not running.", MessageRole.ERROR)
            return
        try:
            await self.context.shell.send_input(text)
        except ShellUnavailable as e:
            self.add_message(str(e), MessageRole.ERROR)

    async def new_session(self, name: Optional[str] = None) -> None:
        await self.save_current_session()
        self.messages = []
        self.current_session = name or default_session_name()
        self.add_message(
            f"New Session: {self.current_session}. Model: {self.context.client.model}",
            MessageRole.SYSTEM,
        )
        await self.save_current_session()

    async def load_session(self, name: str) -> bool:
        try:
            messages = await self.context.store.load_session(name)
        except sqlite3.Error as e:
            self.add_message(f"Failed to load: {e}", MessageRole.ERROR)
            return False
        if not messages:
            self.add_message(f"Failed to load: no session named '{name}'", MessageRole.ERROR)
            return False

        await self.save_current_session()
        self.messages = messages
        self.current_session = name
        self.add_message(f"Session '{name}' loaded.", MessageRole.SYSTEM)
        return True

    def resolve_workspace(self, raw: str) -> Path:
        """Expand ``~`` and make ``raw`` absolute against the current workspace."""
        path = Path(os.path.expanduser(raw))
        if not path.is_absolute():
            path = Path(self.context.config.workspace_path).expanduser() / path
        return path

    def change_workspace(self, raw: str) -> bool:
        """Point the sandbox at another directory.

        The restart runs in the background; the new handles arrive as a
        ``WorkspaceRestarted`` event.
        """
        path = self.resolve_workspace(raw)
        if not path.exists():
            self.add_message(f"Path does not exist: {path}", MessageRole.ERROR)
            return False
        try:
            path = path.resolve(strict=True)
        except (OSError, RuntimeError) as e:
            self.add_message(f"Invalid path: {e}", MessageRole.ERROR)
            return False

        self.context.config.workspace_path = path
        self.add_message(f"Switching workspace to: {path}", MessageRole.SYSTEM)
        self.add_message("Restarting sandbox... (this may take a moment)", MessageRole.THINKING)
        self._spawn(self._restart_workspace(path))
        self.context.config_manager.save_config()
        return True

    async def _restart_workspace(self, path: Path) -> None:
        try:
            await self.context.restart_workspace(path)
        except SandboxError as e:
            await self.context.events.publish(Error(text=f"Failed to restart sandbox: {e}"))

    def set_model(self, name: str, persist: bool = False) -> None:
        self.context.client.model = name
        self.context.config.llm.model = name
        if persist:
            self.context.config_manager.save_config()
            self.add_message(f"Default model set to: {name}", MessageRole.SYSTEM)
        else:
            self.add_message(f"Switched to model: {name}", MessageRole.SYSTEM)

    def refresh_models(self) -> "asyncio.Task":
        """Fetch the model list in the background; the result arrives as ``ModelsLoaded``."""
        return self._spawn(self._load_models())

    async def _load_models(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            models = await loop.run_in_executor(None, self.context.client.list_models)
        except BackendConnectionError as e:
            await self.context.events.publish(Error(text=str(e)))
            return
        await self.context.events.publish(ModelsLoaded(models=models))

    def _spawn(self, coro) -> "asyncio.Task":
        task = asyncio.create_task(coro)
        self._background.append(task)
        task.add_done_callback(self._background.remove)
        return task

    async def shutdown(self) -> None:
        if self.turn_running:
            self.turn_task.cancel()
            await asyncio.wait({self.turn_task})
        for task in list(self._background):
            task.cancel()
        await self.save_current_session()
