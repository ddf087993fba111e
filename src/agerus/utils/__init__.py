"""Configuration and logging helpers."""

from .config import AgentConfig, ConfigManager, LLMConfig, SandboxConfig

__all__ = ["AgentConfig", "ConfigManager", "LLMConfig", "SandboxConfig"]
