"""Configuration management for the agent."""

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError
from dotenv import load_dotenv

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_HOME = Path.home() / ".agerus"


class LLMConfig(BaseModel):
    """Configuration for the chat backend."""
    model: str = Field(default="qwen2.5-coder:latest", description="Model name")
    chat_url: str = Field(default="http://localhost:11434/api/chat", description="Streaming chat endpoint")
    request_timeout: float = Field(default=300.0, gt=0, description="Seconds to wait on the backend")


class SandboxConfig(BaseModel):
    """Configuration for the Docker sandbox the shell runs in."""
    enabled: bool = Field(default=True, description="Run the shell inside Docker")
    container_name: str = Field(default="agerus_sandbox", description="Container name")
    image: str = Field(default="ubuntu:latest", description="Image used for a fresh container")
    workdir: str = Field(default="/workspace", description="Mount point of the workspace inside the container")
    probe_command: Optional[str] = Field(default="command -v git", description="Succeeds when the image is provisioned")
    bootstrap_command: Optional[str] = Field(
        default="apt-get update && apt-get install -y curl git vim nano wget build-essential",
        description="Run once when the probe fails",
    )


class AgentConfig(BaseModel):
    """Main agent configuration."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)

    workspace_path: Path = Field(default=Path("./workspace"), description="Host directory shared with the sandbox")

    # Interface settings
    event_queue_size: int = Field(default=256, gt=0, description="Capacity of the UI event bus")
    log_level: str = Field(default="INFO", description="Log level")
    log_file: Optional[Path] = Field(default=None, description="Log file (defaults to ~/.agerus/agerus.log)")


class ConfigManager:
    """Manages configuration loading and saving."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or DEFAULT_HOME / "config.yaml"
        self._config: Optional[AgentConfig] = None

    def load_config(self) -> AgentConfig:
        """Load configuration from file or create default."""
        if self._config is not None:
            return self._config

        load_dotenv()

        if self.config_path.exists():
            try:
                with open(self.config_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                self._config = AgentConfig(**data)
            except (OSError, yaml.YAMLError, ValidationError, TypeError) as e:
                logger.warning("Could not load config from %s: %s", self.config_path, e)
                self._config = AgentConfig()
        else:
            self._config = AgentConfig()

        self._apply_env_overrides()
        return self._config

    def load_from_dict(self, data: dict) -> AgentConfig:
        """Validate a raw mapping and make it the current configuration."""
        try:
            self._config = AgentConfig(**data)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e
        return self._config

    def save_config(self) -> None:
        """Save current configuration to file."""
        if self._config is None:
            return

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, "w") as f:
            yaml.safe_dump(self._config.model_dump(mode="json"), f, default_flow_style=False)

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        if not self._config:
            return

        if os.getenv("LLM_AGENT_WORKSPACE"):
            self._config.workspace_path = Path(os.environ["LLM_AGENT_WORKSPACE"])

        if os.getenv("LLM_MODEL"):
            self._config.llm.model = os.environ["LLM_MODEL"]

        if os.getenv("LLM_BASE_URL"):
            self._config.llm.chat_url = os.environ["LLM_BASE_URL"].rstrip("/") + "/api/chat"

        if os.getenv("AGERUS_LOG_LEVEL"):
            self._config.log_level = os.environ["AGERUS_LOG_LEVEL"].upper()

    @property
    def config(self) -> AgentConfig:
        """Get current configuration."""
        if self._config is None:
            self.load_config()
        return self._config

    def update_config(self, **kwargs) -> None:
        """Update configuration values."""
        if self._config is None:
            self.load_config()

        for key, value in kwargs.items():
            if hasattr(self._config, key):
                setattr(self._config, key, value)

        self.save_config()
