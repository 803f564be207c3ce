"""Application settings."""

from .config import Config, LogLevel, configure_logging, get_config

__all__ = ["Config", "LogLevel", "configure_logging", "get_config"]
