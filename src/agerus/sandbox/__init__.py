"""Docker sandbox provisioning."""

from .docker import ensure_sandbox, restart_sandbox, shell_command

__all__ = ["ensure_sandbox", "restart_sandbox", "shell_command"]
