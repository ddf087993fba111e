"""
agerus

A terminal coding agent that talks to a local Ollama-style model, runs its
tools against a persistent shell inside a Docker sandbox, and streams
everything back to the terminal as it happens.
"""

__version__ = "1.0.0"

from .context import AppContext
from .core.agent import AgentOrchestrator
from .interface.app import App

__all__ = ["AgentOrchestrator", "App", "AppContext"]
