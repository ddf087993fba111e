"""Display manager for rich terminal output."""

from typing import Any, Dict, List, Optional, Union

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

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
from .app import summarize_output
from ..llm.base import ChatMessage, MessageRole
from ..memory.store import SessionInfo

ROLE_STYLES = {
    MessageRole.USER: "bold white",
    MessageRole.ASSISTANT: "green",
    MessageRole.THINKING: "dim italic",
    MessageRole.SYSTEM: "cyan",
    MessageRole.ERROR: "bold red",
    MessageRole.TOOL: "dim",
}


class DisplayManager:
    """Prints bus events and transcript notes to the console."""

    def __init__(self, console: Optional[Console] = None, show_terminal: bool = True):
        self.console = console or Console()
        self.show_terminal = show_terminal
        self._streaming: Optional[str] = None

    def print(self, *args, **kwargs) -> None:
        """Print with rich formatting."""
        self._end_stream()
        self.console.print(*args, **kwargs)

    def print_panel(
        self,
        content: Union[str, Text],
        title: Optional[str] = None,
        style: str = "blue",
        border_style: str = "blue"
    ) -> None:
        """Print content in a panel."""
        self.print(Panel(content, title=title, style=style, border_style=border_style, padding=(1, 2)))

    def print_header(self, text: str, style: str = "bold blue") -> None:
        self.print(f"\n{text}", style=style)
        self.console.print("─" * len(text), style=style)

    def print_error(self, message: str) -> None:
        error_text = Text("ERROR: ", style="bold red")
        error_text.append(message, style="red")
        self.print(error_text)

    def print_info(self, message: str) -> None:
        self.print(message, style="cyan")

    def print_success(self, message: str) -> None:
        self.print(f"✅ {message}", style="green")

    def print_tree(self, root_data: Dict[str, Any], title: Optional[str] = None) -> None:
        """Print nested settings as a tree."""
        tree = Tree(title or "Configuration")
        self._add_tree_nodes(tree, root_data)
        self.print(tree)

    def _add_tree_nodes(self, parent: Tree, data: Any) -> None:
        if isinstance(data, dict):
            for key, value in data.items():
                if isinstance(value, dict):
                    self._add_tree_nodes(parent.add(f"[bold]{key}[/bold]"), value)
                else:
                    parent.add(f"{key}: {value}")
        else:
            parent.add(str(data))

    def print_message(self, message: ChatMessage) -> None:
        """Print one transcript entry."""
        style = ROLE_STYLES.get(message.role, "")
        if message.role == MessageRole.THINKING and message.collapsed:
            self.print(f"💭 {message.content.splitlines()[0] if message.content else ''} …", style=style, markup=False)
        elif message.role == MessageRole.ERROR:
            self.print_error(message.content)
        else:
            self.print(message.content, style=style, highlight=False, markup=False)

    def print_help(self, commands: Dict[str, str]) -> None:
        """Print help information."""
        self.print_header("🆘 Available Commands")

        table = Table()
        table.add_column("Command", style="cyan")
        table.add_column("Description", style="white")

        for command, description in commands.items():
            table.add_row(command, description)

        self.console.print(table)

    def print_models(self, models: List[str], current: str) -> None:
        if not models:
            self.print("No models available", style="yellow")
            return
        table = Table(title="🤖 Models")
        table.add_column("Name", style="cyan")
        table.add_column("Active")
        for name in models:
            table.add_row(name, "✓" if name == current else "")
        self.print(table)

    def print_sessions(self, sessions: List[SessionInfo], current: Optional[str] = None) -> None:
        if not sessions:
            self.print("No saved sessions", style="yellow")
            return
        table = Table(title="💾 Sessions")
        table.add_column("Name", style="cyan")
        table.add_column("Messages", justify="right")
        table.add_column("Updated")
        for info in sessions:
            name = f"{info.name} *" if info.name == current else info.name
            table.add_row(name, str(info.message_count), info.updated_at.strftime("%Y-%m-%d %H:%M"))
        self.print(table)

    def print_separator(self, char: str = "─", style: str = "dim") -> None:
        """Print a separator line."""
        self.print(char * self.console.size.width, style=style)

    def _stream(self, kind: str, text: str, style: str) -> None:
        if self._streaming != kind:
            self._end_stream()
            self._streaming = kind
        self.console.print(text, end="", style=style, highlight=False, markup=False)

    def _end_stream(self) -> None:
        if self._streaming is not None:
            self.console.print()
            self._streaming = None

    def render_event(self, event: AppEvent) -> None:
        """Print a bus event as it arrives."""
        if isinstance(event, Token):
            self._stream("token", event.text, "green")
        elif isinstance(event, Thinking):
            self._stream("thinking", event.text, "dim italic")
        elif isinstance(event, CommandStart):
            self.print(f"🛠️ {event.label}", style="bold cyan")
        elif isinstance(event, CommandEnd):
            self.print(summarize_output(event.summary), style="dim", markup=False)
        elif isinstance(event, TerminalLine):
            if self.show_terminal:
                self.print(f"│ {event.text}", style="dim", markup=False, highlight=False)
        elif isinstance(event, Error):
            self.print_error(event.text)
        elif isinstance(event, TurnFinished):
            self._end_stream()
        elif isinstance(event, WorkspaceRestarted):
            self.print("--- Workspace Changed / Shell Restarted ---", style="dim")
        elif isinstance(event, ModelsLoaded):
            self._end_stream()
