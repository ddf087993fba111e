"""Session persistence."""

from .store import SessionInfo, SessionStore

__all__ = ["SessionInfo", "SessionStore"]
