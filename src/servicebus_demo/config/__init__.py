"""Configuration helpers for the Service Bus demo."""

from .settings import DEFAULT_LOGIN_SCOPES, Settings, SettingsManager

__all__ = [
    "DEFAULT_LOGIN_SCOPES",
    "Settings",
    "SettingsManager",
]
