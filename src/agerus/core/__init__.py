"""Core agent functionality."""

from .agent import MAX_ITERATIONS, AgentOrchestrator, ModelReply, TurnState

__all__ = ["AgentOrchestrator", "ModelReply", "TurnState", "MAX_ITERATIONS"]
