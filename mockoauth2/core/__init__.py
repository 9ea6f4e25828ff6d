"""Core module initialization."""

from .config_manager import ConfigManager, MockOAuth2Config
from .logging_config import setup_logging

__all__ = [
    "ConfigManager",
    "MockOAuth2Config",
    "setup_logging",
]
