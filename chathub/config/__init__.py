"""
Configuration management for ChatHub.
"""

from .config import Config, load_config, get_config, set_config, DatabaseConfig, OpenAIConfig, DedupConfig, DeliveryConfig, NotificationConfig, AdminConfig, LoggingConfig, ServerConfig, get_env_config, initialize_env_config, EnvironmentConfig

__all__ = ["Config", "load_config", "get_config", "set_config", "DatabaseConfig", "OpenAIConfig", "DedupConfig", "DeliveryConfig", "NotificationConfig", "AdminConfig", "LoggingConfig", "ServerConfig", "get_env_config", "initialize_env_config", "EnvironmentConfig"]
