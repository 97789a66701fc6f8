"""
Configuration management for the MCP server core.

Handles loading, validation, and management of server configuration
from files and environment variables.
"""

import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..protocol.capabilities import DEFAULT_SERVER_CAPABILITIES
from ..protocol.router import DEFAULT_PROTOCOL_VERSION, SUPPORTED_PROTOCOL_VERSIONS

_TRUE_VALUES = {"1", "true", "yes", "on"}


class ServerInfoConfig(BaseModel):
    """Identity reported in the ``initialize`` result."""

    name: str = Field(default="mcp-server-core", description="Server name")
    version: str = Field(default="0.1.0", description="Server version")


class ServerConfig(BaseModel):
    """Configuration for MCP server behavior."""

    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Expose internal error detail and verbose logs")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper


class ProtocolConfig(BaseModel):
    """Configuration for protocol negotiation and session handling."""

    protocol_version: str = Field(
        default=DEFAULT_PROTOCOL_VERSION, description="Version answered to unsupported requests"
    )
    supported_versions: List[str] = Field(
        default_factory=lambda: list(SUPPORTED_PROTOCOL_VERSIONS),
        description="Protocol versions echoed back when requested",
    )
    strict_initialization: bool = Field(
        default=True, description="Reject requests sent before initialize"
    )
    page_size: Optional[int] = Field(default=None, description="Default page size for list methods")

    @field_validator("page_size")
    @classmethod
    def validate_page_size(cls, v: Optional[int]) -> Optional[int]:
        """Validate page size."""
        if v is not None and v < 1:
            raise ValueError(f"Invalid page size: {v}. Must be a positive integer")
        return v

    @model_validator(mode="after")
    def validate_protocol_version(self) -> "ProtocolConfig":
        """Make sure the default version is one of the supported ones."""
        if self.protocol_version not in self.supported_versions:
            raise ValueError(
                f"protocol_version {self.protocol_version} is not in supported_versions"
            )
        return self


class Config(BaseModel):
    """Main configuration object."""

    model_config = ConfigDict(extra="forbid")

    server_info: ServerInfoConfig = Field(default_factory=ServerInfoConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    protocol: ProtocolConfig = Field(default_factory=ProtocolConfig)
    capabilities: Dict[str, Any] = Field(
        default_factory=lambda: copy.deepcopy(DEFAULT_SERVER_CAPABILITIES),
        description="Server-declared capabilities",
    )


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment variables.

    Args:
        config_path: Path to configuration file. If None, looks for
                    MCP_SERVER_CONFIG_PATH environment variable.

    Returns:
        Loaded and validated configuration

    Raises:
        FileNotFoundError: If config file specified but not found
        ValueError: If configuration is invalid
    """
    if config_path is None:
        env_path = os.getenv("MCP_SERVER_CONFIG_PATH")
        if env_path:
            config_path = Path(env_path)

    config_data: Dict[str, Any] = {}
    if config_path and config_path.exists():
        with open(config_path, "r") as f:
            config_data = json.load(f)
    elif config_path:
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    env_overrides: Dict[str, Any] = {}

    log_level = os.getenv("MCP_SERVER_LOG_LEVEL")
    if log_level:
        env_overrides.setdefault("server", {})["log_level"] = log_level

    debug = os.getenv("MCP_SERVER_DEBUG")
    if debug:
        env_overrides.setdefault("server", {})["debug"] = debug.strip().lower() in _TRUE_VALUES

    if env_overrides:
        config_data = _deep_merge(config_data, env_overrides)

    return Config(**config_data)


def create_default_config(config_path: Path) -> None:
    """
    Create a default configuration file.

    Args:
        config_path: Path where to create the configuration file
    """
    default_config = Config().model_dump()

    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w") as f:
        json.dump(default_config, f, indent=2)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Override dictionary

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result
