"""Configuration package for the patient records service."""

from .settings import (
    AppSettings,
    DatabaseSettings,
    LoggingSettings,
    SessionSettings,
    Settings,
    get_settings,
)

__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "SessionSettings",
    "Settings",
    "get_settings",
]
