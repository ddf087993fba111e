"""Terminal interface for agerus."""

from .app import App
from .display import DisplayManager
from .terminal import TerminalInterface

__all__ = ["App", "DisplayManager", "TerminalInterface"]
