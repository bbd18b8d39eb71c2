from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv
from platformdirs import user_cache_dir, user_config_dir

APP_NAME = "ServiceBusDemo"
ENV_PREFIX = "SERVICEBUS_DEMO_"
ENV_FILE_NAME = "settings.env"
TOKEN_CACHE_NAME = "token_cache.bin"
SERVICEBUS_HOST_SUFFIX = ".servicebus.windows.net"

DEFAULT_LOGIN_SCOPES: tuple[str, ...] = ("https://graph.microsoft.com/User.Read",)


def _config_dir() -> Path:
    path = Path(user_config_dir(APP_NAME, roaming=True))
    path.mkdir(parents=True, exist_ok=True)
    return path


def _cache_dir() -> Path:
    path = Path(user_cache_dir(APP_NAME))
    path.mkdir(parents=True, exist_ok=True)
    return path


def cache_dir() -> Path:
    return _cache_dir()


def log_dir() -> Path:
    path = cache_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def runtime_dir() -> Path:
    path = cache_dir() / "runtime"
    path.mkdir(parents=True, exist_ok=True)
    return path


def _env_file_path(explicit: Path | None) -> Path:
    if explicit is not None:
        return explicit
    return _config_dir() / ENV_FILE_NAME


@dataclass(slots=True)
class Settings:
    """Tenant, app registration and Service Bus coordinates.

    Every Azure coordinate defaults to an empty string. Nothing is validated
    locally: a missing value surfaces as a provider-side error on the first
    remote call that depends on it.
    """

    tenant_id: str = ""
    client_id: str = ""
    subscription_id: str = ""
    resource_group_name: str = ""
    namespace_name: str = ""
    topic_name: str = ""
    subscription_name: str = ""
    redirect_uri: str | None = None
    authority: str | None = None
    login_scopes: list[str] = field(default_factory=lambda: list(DEFAULT_LOGIN_SCOPES))
    token_cache_path: Path = field(
        default_factory=lambda: _cache_dir() / TOKEN_CACHE_NAME
    )

    @property
    def is_configured(self) -> bool:
        """True when mandatory tenant + client identifiers are set."""
        return bool(self.tenant_id and self.client_id)

    @property
    def fully_qualified_namespace(self) -> str:
        return f"{self.namespace_name}{SERVICEBUS_HOST_SUFFIX}"

    def derive_authority(self) -> str:
        """Return configured authority, defaulting to common tenant."""
        if self.authority:
            return self.authority
        tenant = self.tenant_id or "common"
        return f"https://login.microsoftonline.com/{tenant}"


_REQUIRED_KEYS: tuple[tuple[str, str], ...] = (
    ("tenant_id", "TENANT_ID"),
    ("client_id", "CLIENT_ID"),
    ("subscription_id", "SUBSCRIPTION_ID"),
    ("resource_group_name", "RESOURCE_GROUP_NAME"),
    ("namespace_name", "NAMESPACE_NAME"),
    ("topic_name", "TOPIC_NAME"),
    ("subscription_name", "SUBSCRIPTION_NAME"),
)


class SettingsManager:
    """Load and persist application settings with environment overrides."""

    def __init__(self, env_file: Path | None = None) -> None:
        self._env_file = _env_file_path(env_file)

    @property
    def env_file(self) -> Path:
        return self._env_file

    def load(self) -> Settings:
        """Load settings from environment, falling back to persisted file."""
        load_dotenv(self._env_file, override=False)

        settings = Settings(
            **{attr: self._get_env(key) or "" for attr, key in _REQUIRED_KEYS},
            redirect_uri=self._get_env("REDIRECT_URI"),
            authority=self._get_env("AUTHORITY"),
        )

        token_cache_override = self._get_env("TOKEN_CACHE_PATH")
        if token_cache_override:
            settings.token_cache_path = Path(token_cache_override).expanduser()

        return settings

    def save(self, settings: Settings) -> None:
        """Persist core configuration fields to the managed env file."""
        self._env_file.parent.mkdir(parents=True, exist_ok=True)
        content = [
            f"{ENV_PREFIX}{key}={getattr(settings, attr)}"
            for attr, key in _REQUIRED_KEYS
        ]
        content += [
            f"{ENV_PREFIX}REDIRECT_URI={settings.redirect_uri or ''}",
            f"{ENV_PREFIX}AUTHORITY={settings.authority or ''}",
            f"{ENV_PREFIX}TOKEN_CACHE_PATH={settings.token_cache_path}",
        ]
        self._env_file.write_text("\n".join(content) + "\n", encoding="utf-8")

    def _get_env(self, name: str) -> str | None:
        return os.getenv(f"{ENV_PREFIX}{name}") or None


__all__ = [
    "DEFAULT_LOGIN_SCOPES",
    "Settings",
    "SettingsManager",
    "cache_dir",
    "log_dir",
    "runtime_dir",
]
