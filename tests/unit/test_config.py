"""
Unit tests for configuration loading.
"""

import json

import pytest
from pydantic import ValidationError

from mcp_server_core.config.settings import (
    Config,
    ProtocolConfig,
    ServerConfig,
    _deep_merge,
    create_default_config,
    load_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the process environment from leaking into config tests."""
    for name in ("MCP_SERVER_CONFIG_PATH", "MCP_SERVER_LOG_LEVEL", "MCP_SERVER_DEBUG"):
        monkeypatch.delenv(name, raising=False)


class TestConfigModels:
    """Test configuration validation."""

    def test_defaults(self):
        config = Config()

        assert config.server_info.name == "mcp-server-core"
        assert config.server.log_level == "INFO"
        assert config.server.debug is False
        assert config.protocol.protocol_version == "2025-06-18"
        assert config.protocol.strict_initialization is True
        assert config.protocol.page_size is None
        assert config.capabilities["resources"] == {"subscribe": False, "listChanged": False}

    def test_log_level_is_normalized(self):
        assert ServerConfig(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            ServerConfig(log_level="LOUD")

    def test_invalid_page_size(self):
        with pytest.raises(ValidationError):
            ProtocolConfig(page_size=0)

    def test_default_version_must_be_supported(self):
        with pytest.raises(ValidationError):
            ProtocolConfig(protocol_version="2030-01-01")

    def test_unknown_section_is_rejected(self):
        with pytest.raises(ValidationError):
            Config(webhooks={})

    def test_capabilities_default_is_not_shared(self):
        first = Config()
        first.capabilities["tools"]["listChanged"] = True

        assert Config().capabilities["tools"]["listChanged"] is False


class TestLoadConfig:
    """Test loading from files and the environment."""

    def test_load_without_file(self):
        assert load_config() == Config()

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"server": {"debug": True}, "protocol": {"page_size": 10}}))

        config = load_config(path)

        assert config.server.debug is True
        assert config.protocol.page_size == 10

    def test_load_from_env_path(self, tmp_path, monkeypatch):
        path = tmp_path / "env.json"
        path.write_text(json.dumps({"server_info": {"name": "from-env"}}))
        monkeypatch.setenv("MCP_SERVER_CONFIG_PATH", str(path))

        assert load_config().server_info.name == "from-env"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.json")

    def test_env_overrides(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"server": {"log_level": "ERROR", "debug": False}}))
        monkeypatch.setenv("MCP_SERVER_LOG_LEVEL", "warning")
        monkeypatch.setenv("MCP_SERVER_DEBUG", "true")

        config = load_config(path)

        assert config.server.log_level == "WARNING"
        assert config.server.debug is True

    def test_env_debug_false(self, monkeypatch):
        monkeypatch.setenv("MCP_SERVER_DEBUG", "0")
        assert load_config().server.debug is False

    def test_invalid_file_content(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"server": {"log_level": "LOUD"}}))

        with pytest.raises(ValueError):
            load_config(path)


class TestDefaultConfig:
    """Test default configuration file creation."""

    def test_create_and_reload(self, tmp_path):
        path = tmp_path / "nested" / "config.json"

        create_default_config(path)

        assert path.exists()
        assert load_config(path) == Config()


def test_deep_merge():
    base = {"a": {"b": 1, "c": 2}, "d": 3}

    merged = _deep_merge(base, {"a": {"b": 10}, "e": 4})

    assert merged == {"a": {"b": 10, "c": 2}, "d": 3, "e": 4}
    assert base == {"a": {"b": 1, "c": 2}, "d": 3}
