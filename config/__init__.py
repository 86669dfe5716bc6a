"""
Configuration module.

Exports:
    Settings: Application settings model
    get_settings: Function to get cached settings (for dependency injection)
    configure_logging: structlog setup for the process
"""

from config.settings import get_settings, Settings
from config.logging_config import configure_logging

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
]
