"""Exceptions raised across the agent."""

from typing import Optional


class AgerusError(Exception):
    """Base exception class for agent errors."""

    pass


class ConfigurationError(AgerusError):
    """Raised when the configuration cannot be loaded or is invalid."""

    pass


class BackendError(AgerusError):
    """The chat backend answered with a non-success status."""

    def __init__(self, status: int, detail: str = ""):
        self.status = status
        self.detail = detail
        super().__init__(f"Backend API error ({status}): {detail}" if detail else f"Backend API error ({status})")


class BackendConnectionError(AgerusError):
    """The chat backend could not be reached (timeout, refusal, DNS, broken stream)."""

    pass


class ToolRegistryUnavailable(AgerusError):
    """The tool registry stopped answering requests."""

    pass


class ToolExecutionError(AgerusError):
    """A tool ran but reported a failure."""

    def __init__(self, tool_name: str, message: str, suggested_actions: Optional[list] = None):
        self.tool_name = tool_name
        self.suggested_actions = suggested_actions or []
        super().__init__(message)


class ShellUnavailable(AgerusError):
    """The shell actor is not running."""

    pass


class SandboxError(AgerusError):
    """Provisioning the Docker sandbox failed."""

    pass
