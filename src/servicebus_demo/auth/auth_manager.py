from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Sequence

import msal

from servicebus_demo.auth.types import AccessToken, AuthenticationState
from servicebus_demo.config.settings import DEFAULT_LOGIN_SCOPES, Settings
from servicebus_demo.errors import AuthenticationError
from servicebus_demo.events import EventHook
from servicebus_demo.utils import get_logger

from .token_cache import TokenCacheManager


logger = get_logger(__name__)

# MSAL reserved scopes that cannot be explicitly requested with fully qualified URIs
_MSAL_RESERVED_SCOPES = frozenset({"profile", "openid", "offline_access"})


@dataclass(slots=True)
class AuthenticatedUser:
    display_name: str | None
    username: str | None
    home_account_id: str | None
    tenant_id: str | None


class AuthManager:
    """MSAL public client session used as the application's token source.

    One instance is created by the entry point and injected wherever tokens
    are needed; it outlives every bus session built on top of it. Token
    requests try the cache first and fall back to an interactive browser
    prompt.
    """

    def __init__(self) -> None:
        self._cache_manager: TokenCacheManager | None = None
        self._app: msal.PublicClientApplication | None = None
        self._settings: Settings | None = None
        self._lock = threading.RLock()
        self._user: AuthenticatedUser | None = None
        self._state = AuthenticationState.UNAUTHENTICATED
        self.state_changed: EventHook[AuthenticationState] = EventHook()

    def configure(self, settings: Settings) -> None:
        """Create the MSAL public client for the configured tenant.

        Missing identifiers are passed through unchanged; Entra ID rejects
        them on the first sign-in.

        Raises:
            AuthenticationError: If MSAL rejects the authority.
        """
        authority = settings.derive_authority()
        cache_manager = TokenCacheManager(settings.token_cache_path)
        try:
            app = msal.PublicClientApplication(
                client_id=settings.client_id,
                authority=authority,
                token_cache=cache_manager.cache,
            )
        except ValueError as exc:
            logger.error(
                "Invalid MSAL configuration", authority=authority, error=str(exc)
            )
            raise AuthenticationError(
                f"Invalid authority or redirect URI: {exc}",
            ) from exc
        self._cache_manager = cache_manager
        self._app = app
        self._settings = settings
        logger.info("Configured MSAL PublicClientApplication", authority=authority)

        if self._get_account(app) is not None:
            self._set_state(AuthenticationState.AUTHENTICATED)
        else:
            self._set_state(AuthenticationState.UNAUTHENTICATED)

    @property
    def state(self) -> AuthenticationState:
        return self._state

    async def acquire_token(self, scopes: Sequence[str] | None = None) -> AccessToken:
        scopes = list(scopes or self._login_scopes())
        return await asyncio.to_thread(self._acquire_token_with_refresh, scopes, True)

    async def sign_in_interactive(
        self, scopes: Sequence[str] | None = None
    ) -> AccessToken:
        scopes = list(scopes or self._login_scopes())
        self._set_state(AuthenticationState.IN_PROGRESS)
        try:
            token = await asyncio.to_thread(self._acquire_token_interactive, scopes)
        except Exception:
            self._set_state(AuthenticationState.UNAUTHENTICATED)
            raise
        self._set_state(AuthenticationState.AUTHENTICATED)
        return token

    async def sign_out(self) -> None:
        await asyncio.to_thread(self._sign_out_sync)
        self._set_state(AuthenticationState.UNAUTHENTICATED)

    def acquire_token_sync(self, scopes: Sequence[str] | None = None) -> AccessToken:
        scopes = list(scopes or self._login_scopes())
        try:
            return self._acquire_token_with_refresh(scopes, interactive=False)
        except AuthenticationError as exc:
            raise AuthenticationError(
                "Interactive sign-in required before requesting tokens",
            ) from exc

    def current_user(self) -> AuthenticatedUser | None:
        return self._user

    # Internal --------------------------------------------------------

    def _login_scopes(self) -> Sequence[str]:
        if self._settings and self._settings.login_scopes:
            return self._settings.login_scopes
        return DEFAULT_LOGIN_SCOPES

    def _set_state(self, state: AuthenticationState) -> None:
        if state is self._state:
            return
        self._state = state
        logger.debug("Authentication state changed", state=state.value)
        self.state_changed.emit(state)

    def _filter_scopes(self, scopes: Sequence[str]) -> list[str]:
        """Drop scopes MSAL adds on its own or refuses to mix with resource scopes."""
        filtered = [
            s
            for s in scopes
            if s not in _MSAL_RESERVED_SCOPES and not s.endswith("/.default")
        ]

        if len(filtered) != len(scopes):
            logger.debug(
                "Filtered reserved/incompatible scopes",
                removed=sorted(set(scopes) - set(filtered)),
                remaining=filtered,
            )

        return filtered

    def _acquire_token_with_refresh(
        self,
        scopes: Sequence[str],
        interactive: bool,
    ) -> AccessToken:
        with self._lock:
            result = self._acquire_token_silent(scopes)
            if result is None:
                if not interactive:
                    raise AuthenticationError("Silent token acquisition failed")
                result = self._acquire_token_interactive(scopes)
            return result

    def _acquire_token_silent(self, scopes: Sequence[str]) -> AccessToken | None:
        app = self._ensure_app()
        account = self._get_account(app)
        if account is None:
            return None
        result = app.acquire_token_silent(self._filter_scopes(scopes), account=account)
        if not result:
            return None
        token = self._process_result(result)
        self._save_cache()
        return token

    def _acquire_token_interactive(self, scopes: Sequence[str]) -> AccessToken:
        app = self._ensure_app()
        result = app.acquire_token_interactive(
            scopes=self._filter_scopes(scopes),
            prompt="select_account",
        )
        token = self._process_result(result)
        self._save_cache()
        return token

    def _sign_out_sync(self) -> None:
        app = self._ensure_app()
        for account in app.get_accounts():
            app.remove_account(account)
        if self._cache_manager is not None:
            self._cache_manager.clear()
            self._cache_manager.attach(app)
        self._user = None
        logger.info("Signed out MSAL accounts")

    def _save_cache(self) -> None:
        if self._cache_manager is not None:
            self._cache_manager.save()

    def _process_result(self, result: dict[str, object]) -> AccessToken:
        if "error" in result:
            error_desc = result.get("error_description", result.get("error"))
            raise AuthenticationError(f"MSAL error: {error_desc}")

        access_token = result.get("access_token")
        if not isinstance(access_token, str):
            raise AuthenticationError("MSAL response missing access token")

        expiry = self._resolve_expiry(result)
        id_claims = result.get("id_token_claims")
        if isinstance(id_claims, dict):
            self._user = AuthenticatedUser(
                display_name=id_claims.get("name"),
                username=id_claims.get("preferred_username") or id_claims.get("email"),
                home_account_id=id_claims.get("oid"),
                tenant_id=id_claims.get("tid"),
            )
        return AccessToken(access_token, expiry)

    @staticmethod
    def _resolve_expiry(result: dict[str, object]) -> int:
        # MSAL reports a relative lifetime; cache hits may carry an absolute one.
        expires_on = result.get("expires_on")
        if isinstance(expires_on, (int, str)):
            return int(expires_on)
        expires_in = result.get("expires_in")
        if isinstance(expires_in, (int, str)):
            return int(time.time()) + int(expires_in)
        return int(time.time()) + 3600

    def _get_account(self, app: msal.PublicClientApplication) -> dict | None:
        accounts = app.get_accounts()
        if not accounts:
            return None
        account = accounts[0]
        self._user = AuthenticatedUser(
            display_name=account.get("name"),
            username=account.get("username"),
            home_account_id=account.get("home_account_id"),
            tenant_id=account.get("environment"),
        )
        return account

    def _ensure_app(self) -> msal.PublicClientApplication:
        if not self._app:
            raise AuthenticationError("Authentication has not been configured")
        return self._app


__all__ = ["AuthManager", "AuthenticatedUser"]
