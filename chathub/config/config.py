"""
Configuration management for ChatHub.
"""

import os
import yaml
import re
from datetime import datetime
from typing import Dict, Optional, Any
from pathlib import Path
from pydantic import BaseModel, Field
from dotenv import load_dotenv


class DatabaseConfig(BaseModel):
    """Database configuration."""
    url: str = Field(default="sqlite:///./chathub.db")
    echo: bool = Field(default=False)


class OpenAIConfig(BaseModel):
    """OpenAI Assistants configuration."""
    api_key: str
    base_url: Optional[str] = None
    poll_interval: float = Field(default=1.0, description="Seconds between run status polls")
    max_poll_attempts: int = Field(default=30, description="Polls allowed before a run is abandoned")
    max_tool_rounds: int = Field(default=5, description="Maximum number of tool output submissions per run")


class DedupConfig(BaseModel):
    """Inbound message deduplication configuration."""
    ttl_hours: int = Field(default=24)
    sweep_interval_seconds: int = Field(default=3600)


class DeliveryConfig(BaseModel):
    """Outbound delivery configuration."""
    rate_limit_backoff_seconds: float = Field(default=2.0)


class NotificationConfig(BaseModel):
    """Telegram chat that receives assistant function call data."""
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None


class AdminConfig(BaseModel):
    """Admin interface configuration."""
    enabled: bool = Field(default=False)
    username: Optional[str] = None
    password: Optional[str] = None


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")


class ServerConfig(BaseModel):
    """HTTP server configuration."""
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)


class Config(BaseModel):
    """Main configuration model."""
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    openai: OpenAIConfig
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    admin: AdminConfig = Field(default_factory=AdminConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)


def substitute_variables(value: Any, env_config: Optional['EnvironmentConfig'] = None) -> Any:
    """
    Substitute variables in configuration values.

    Variable formats:
    - ${variable_name} - standard variable substitution
    - ${variable_name|default_value} - variable with default fallback

    Priority order:
    1. Environment variables (highest priority)
    2. .env file variables
    3. Built-in variables
    4. Default value (if specified with | syntax)
    5. Empty string if not found

    Args:
        value: Configuration value that may contain variables
        env_config: Environment configuration instance

    Returns:
        Value with variables substituted
    """
    if not isinstance(value, str):
        return value

    variable_pattern = r'\$\{([^}]*)\}'

    def replace_variable(match):
        variable_content = match.group(1)

        if not variable_content.strip():
            return ""

        if '|' in variable_content:
            variable_name, default_value = variable_content.split('|', 1)
            variable_name = variable_name.strip()
            default_value = default_value.strip()
        else:
            variable_name = variable_content
            default_value = None

        env_value = os.getenv(variable_name)
        if env_value is not None:
            return env_value

        if env_config:
            env_value = env_config.get(variable_name)
            if env_value is not None:
                return env_value

        builtin_value = _get_builtin_variable(variable_name)
        if builtin_value is not None:
            return builtin_value

        if default_value is not None:
            return default_value

        return ""

    result = re.sub(variable_pattern, replace_variable, value)

    if result == "None":
        return None

    # Empty strings become None so Pydantic defaults apply
    if result == "":
        return None

    return result


def _get_builtin_variable(variable_name: str) -> Optional[str]:
    """Get built-in variable value, or None if the name is unknown."""
    builtin_variables = {
        'today': datetime.now().strftime('%Y-%m-%d')
    }

    return builtin_variables.get(variable_name)


def _substitute_config_values(config_data: Any, env_config: Optional['EnvironmentConfig'] = None) -> Any:
    """Recursively substitute variables in configuration data."""
    if isinstance(config_data, dict):
        result = {}
        for key, value in config_data.items():
            substituted_value = _substitute_config_values(value, env_config)
            # Omit None values so model defaults are used
            if substituted_value is not None:
                result[key] = substituted_value
        return result
    elif isinstance(config_data, list):
        return [_substitute_config_values(item, env_config) for item in config_data]
    elif isinstance(config_data, str):
        return substitute_variables(config_data, env_config)
    else:
        return config_data


def load_config(config_path: str, env_config: Optional['EnvironmentConfig'] = None) -> Config:
    """Load configuration from YAML file with variable substitution."""
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_file, 'r') as f:
        config_data: Dict[str, Any] = yaml.safe_load(f) or {}

    if env_config is None:
        env_config = get_env_config()

    config_data = _substitute_config_values(config_data, env_config)

    return Config(**config_data)


# Global config variable
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration."""
    global _config
    if _config is None:
        raise RuntimeError("Configuration not initialized. Call load_config first.")
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration."""
    global _config
    _config = config


class EnvironmentConfig:
    """Environment configuration manager with .env fallback."""

    def __init__(self, env_file_path: Optional[str] = None):
        self.env_file_path = env_file_path or ".env"
        self._load_env_file()

    def _load_env_file(self) -> None:
        """Load environment variables from .env file if it exists."""
        env_path = Path(self.env_file_path)
        if env_path.exists():
            load_dotenv(env_path)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """
        Get environment variable with fallback support.

        Values from the .env file are already merged into the process
        environment by load_dotenv, without overriding real variables.
        """
        value = os.getenv(key)
        if value is not None:
            return value
        return default

    def get_config_path(self) -> str:
        """Get configuration file path."""
        return self.get("CHATHUB_CONFIG", default="config.yaml")


# Global environment config instance
_env_config: Optional[EnvironmentConfig] = None


def get_env_config() -> EnvironmentConfig:
    """Get the global environment configuration."""
    global _env_config
    if _env_config is None:
        _env_config = EnvironmentConfig()
    return _env_config


def initialize_env_config(env_file_path: Optional[str] = None) -> EnvironmentConfig:
    """Initialize environment configuration with optional .env file path."""
    global _env_config
    _env_config = EnvironmentConfig(env_file_path)
    return _env_config
