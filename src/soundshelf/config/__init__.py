"""Configuration module for soundshelf."""

from .settings import (
    DatabaseSettings,
    ObservabilitySettings,
    ScannerSettings,
    Settings,
    get_settings,
)

__all__ = [
    "DatabaseSettings",
    "ObservabilitySettings",
    "ScannerSettings",
    "Settings",
    "get_settings",
]
