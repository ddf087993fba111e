"""Interactive terminal front end."""

import asyncio
import logging
from typing import Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.patch_stdout import patch_stdout

from .app import App
from .display import DisplayManager
from ..events import ModelsLoaded, TurnFinished
from ..llm.base import MessageRole

logger = logging.getLogger(__name__)

COMMANDS = {
    "/help": "Show available commands",
    "/quit": "Exit the agent",
    "/new [name]": "Start a new session",
    "/load <name>": "Load a saved session",
    "/sessions": "List saved sessions",
    "/model [name]": "Show or switch the model",
    "/models": "List models available on the backend",
    "/cd <path>": "Change the workspace and restart the sandbox",
    "/sh <text>": "Type a line into the sandbox shell",
    "/cancel": "Cancel the running turn",
}


class TerminalInterface:
    """Prompt loop plus a pump task that prints bus events as they arrive."""

    def __init__(self, app: App, display: Optional[DisplayManager] = None):
        self.app = app
        self.display = display or DisplayManager()
        self.session = PromptSession(
            history=InMemoryHistory(),
            auto_suggest=AutoSuggestFromHistory(),
            complete_style="column"
        )
        self.completer = WordCompleter([c.split()[0] for c in COMMANDS], ignore_case=True, sentence=True)
        self.running = False
        self._pump: Optional["asyncio.Task"] = None

    async def start(self) -> None:
        """Run the interactive loop until /quit or end of input."""
        self.running = True
        self._show_welcome()
        self._pump = asyncio.create_task(self._pump_events())
        try:
            with patch_stdout(raw=True):
                while self.running:
                    await self._interaction_loop()
        finally:
            await self._cleanup()

    async def run_once(self, message: str) -> None:
        """Run a single turn, printing events until it finishes."""
        if not self.app.submit(message):
            for note in self.app.messages:
                if note.role == MessageRole.ERROR:
                    self.display.print_message(note)
            return
        while True:
            event = await self.app.context.events.next()
            await self.app.handle_event(event)
            self.display.render_event(event)
            if isinstance(event, TurnFinished):
                break

    def _show_welcome(self) -> None:
        context = self.app.context
        self.display.print_panel(
            "🤖 agerus\n\n"
            "A local coding agent with a persistent sandbox shell.\n"
            "Type /help for commands or just start chatting!",
            title="Welcome",
            style="bold cyan",
            border_style="cyan"
        )
        self.display.print(f"📁 Workspace: {context.config.workspace_path}")
        self.display.print(f"🤖 Model: {context.client.model}")
        self.display.print(f"💾 Session: {self.app.current_session}")
        self.display.print_separator()

    async def _pump_events(self) -> None:
        async for event in self.app.context.events:
            try:
                await self.app.handle_event(event)
                self.display.render_event(event)
                if isinstance(event, ModelsLoaded):
                    self.display.print_models(event.models, self.app.context.client.model)
            except Exception:
                logger.exception("Failed to handle %s event", event.kind)

    async def _interaction_loop(self) -> None:
        try:
            text = await self.session.prompt_async("💬 You: ", completer=self.completer)
        except EOFError:
            self.running = False
            return
        except KeyboardInterrupt:
            if await self.app.abort():
                self.display.print("🛑 Cancelled by user.", style="yellow")
            else:
                self.display.print("Use /quit to exit", style="yellow")
            return

        text = text.strip()
        if not text:
            return
        if text.startswith("/"):
            await self._handle_command(text)
            return
        start = len(self.app.messages)
        if not self.app.submit(text):
            self._show_notes_since(start)
            if self.app.turn_running:
                self.display.print("A turn is still running; /cancel to stop it", style="yellow")

    def _show_notes_since(self, start: int) -> None:
        for message in self.app.messages[max(start, 0):]:
            if message.role in (MessageRole.SYSTEM, MessageRole.ERROR, MessageRole.THINKING):
                self.display.print_message(message)

    async def _handle_command(self, text: str) -> None:
        command, _, argument = text.partition(" ")
        command = command.lower()
        argument = argument.strip()
        start = len(self.app.messages)

        if command == "/help":
            self.display.print_help(COMMANDS)
        elif command in ("/quit", "/exit"):
            self.display.print("👋 Goodbye!", style="cyan")
            self.running = False
        elif command == "/new":
            await self.app.new_session(argument or None)
        elif command == "/load":
            if not argument:
                self.display.print("Usage: /load <name>", style="yellow")
            else:
                await self.app.load_session(argument)
                if self.app.current_session == argument:
                    for message in self.app.messages[:-1]:
                        self.display.print_message(message)
                    start = len(self.app.messages) - 1
        elif command == "/sessions":
            sessions = await self.app.context.store.list_sessions()
            self.display.print_sessions(sessions, self.app.current_session)
        elif command == "/model":
            if argument:
                self.app.set_model(argument)
            else:
                self.display.print_info(f"Current model: {self.app.context.client.model}")
        elif command == "/models":
            self.app.refresh_models()
        elif command == "/cd":
            if not argument:
                self.display.print_info(f"Workspace: {self.app.context.config.workspace_path}")
            else:
                self.app.change_workspace(argument)
        elif command == "/sh":
            await self.app.send_to_shell(argument)
        elif command == "/cancel":
            if not await self.app.abort():
                self.display.print("Nothing to cancel", style="yellow")
        else:
            self.display.print(f"Unknown command: {command}. Type /help", style="yellow")

        self._show_notes_since(start)

    async def _cleanup(self) -> None:
        self.display.print("🧹 Cleaning up...", style="dim")
        await self.app.shutdown()
        if self._pump is not None:
            self._pump.cancel()
            await asyncio.wait({self._pump})
        await self.app.context.close()
        self.display.print("✅ Cleanup complete", style="green")
