"""Persistent shell actor."""

from .session import RunCommand, ShellHandle, ShellRequest, ShellSession, Shutdown, UserInput, run_actor

__all__ = ["RunCommand", "ShellHandle", "ShellRequest", "ShellSession", "Shutdown", "UserInput", "run_actor"]
