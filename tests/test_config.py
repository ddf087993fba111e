"""
Tests for configuration loading.
"""

from pathlib import Path

import pytest
import yaml

from agerus.errors import ConfigurationError
from agerus.utils.config import AgentConfig, ConfigManager


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "config.yaml"


class TestConfigManager:
    """Defaults, YAML files and environment overrides."""

    def test_defaults(self, config_path, clean_environment):
        config = ConfigManager(config_path).load_config()

        assert config.llm.model == "qwen2.5-coder:latest"
        assert config.llm.chat_url == "http://localhost:11434/api/chat"
        assert config.sandbox.container_name == "agerus_sandbox"
        assert config.sandbox.workdir == "/workspace"
        assert config.workspace_path == Path("./workspace")

    def test_yaml_file(self, config_path, clean_environment):
        config_path.write_text(yaml.safe_dump({"llm": {"model": "llama3"}, "sandbox": {"enabled": False}}))

        config = ConfigManager(config_path).load_config()

        assert config.llm.model == "llama3"
        assert config.sandbox.enabled is False

    def test_broken_file_falls_back_to_defaults(self, config_path, clean_environment):
        config_path.write_text("llm: [this is: not valid")

        config = ConfigManager(config_path).load_config()

        assert config == AgentConfig()

    def test_environment_overrides(self, config_path, clean_environment, monkeypatch, tmp_path):
        monkeypatch.setenv("LLM_MODEL", "mistral")
        monkeypatch.setenv("LLM_BASE_URL", "http://gpu-box:11434/")
        monkeypatch.setenv("LLM_AGENT_WORKSPACE", str(tmp_path))
        monkeypatch.setenv("AGERUS_LOG_LEVEL", "debug")

        config = ConfigManager(config_path).load_config()

        assert config.llm.model == "mistral"
        assert config.llm.chat_url == "http://gpu-box:11434/api/chat"
        assert config.workspace_path == tmp_path
        assert config.log_level == "DEBUG"

    def test_save_and_reload(self, config_path, clean_environment, tmp_path):
        manager = ConfigManager(config_path)
        manager.update_config(workspace_path=tmp_path / "ws")

        reloaded = ConfigManager(config_path).load_config()

        assert reloaded.workspace_path == tmp_path / "ws"

    def test_invalid_mapping_rejected(self, config_path):
        with pytest.raises(ConfigurationError):
            ConfigManager(config_path).load_from_dict({"event_queue_size": 0})
