"""
Main entry point for ChatHub application.
"""

import uvicorn
import logging
from pathlib import Path

from chathub.config import load_config, get_env_config
from chathub.api.main import create_app

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(log_level: str = "INFO"):
    """Configure logging with the specified level."""
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        force=True  # Force reconfiguration even if logging was already configured
    )

    # Child loggers inherit from the package logger
    chathub_logger = logging.getLogger('chathub')
    chathub_logger.setLevel(numeric_level)
    chathub_logger.propagate = True

    logging.getLogger().setLevel(numeric_level)

    # Loggers created before this call may carry their own level
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        if logger_name.startswith('chathub.'):
            child = logging.getLogger(logger_name)
            child.setLevel(logging.NOTSET)
            child.propagate = True


def uvicorn_log_config(log_level: str) -> dict:
    """Uvicorn logging config that matches configure_logging."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": LOG_FORMAT,
            },
        },
        "handlers": {
            "default": {
                "formatter": "default",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {
            "level": log_level.upper(),
            "handlers": ["default"],
        },
    }


logger = logging.getLogger(__name__)


def main():
    """Main application entry point."""
    try:
        env_config = get_env_config()
        config_path = Path(env_config.get_config_path())

        if not config_path.exists():
            logger.error(f"Configuration file not found: {config_path}")
            logger.info(f"Please create a {config_path} file with your configuration")
            logger.info("You can also set CHATHUB_CONFIG environment variable to specify a different config file")
            return

        logger.info(f"Loading configuration from {config_path}")
        config = load_config(str(config_path))

        configure_logging(config.logging.level)
        logger.info(f"Logging configured with level: {config.logging.level}")

        app = create_app(config)

        logger.info(f"Starting ChatHub server on {config.server.host}:{config.server.port}...")
        uvicorn.run(
            app,
            host=config.server.host,
            port=config.server.port,
            log_config=uvicorn_log_config(config.logging.level)
        )

    except Exception as e:
        logger.error(f"Failed to start application: {e}")
        raise


if __name__ == "__main__":
    main()
