"""Google Drive OAuth authentication package for Lighthouse"""

import logging
import time
from datetime import datetime
from typing import Callable, Optional

import httpx
from rich.console import Console

import settings

from .constants import FLOW_METHODS, METHOD_AUTO, METHOD_DEVICE
from .device_flow import DeviceFlow
from .errors import AuthError, CredentialStoreCorrupted, FlowUnavailable
from .jwt_utils import extract_email
from .keyring_vault import KeyringVault
from .localhost_flow import LocalhostFlow
from .models import AuthStatus, ProviderConfig, StoredCredential, TokenBundle, TokenExpiry
from .storage import CredentialStore
from .token_exchange import revoke_token
from .token_manager import TokenLifecycleManager

logger = logging.getLogger(__name__)


def create_credential_store() -> CredentialStore:
    """Credential store wired from settings"""
    vault = KeyringVault(settings.KEYRING_SERVICE_NAME, enabled=settings.KEYRING_ENABLED)
    return CredentialStore(settings.CONFIG_DIR, vault, settings.TOKEN_FILE_NAME)


class OAuthManager:
    """Entry point for authentication

    This class orchestrates:
    - choosing and running an interactive flow (localhost or device)
    - persisting the resulting credential
    - handing out valid access tokens
    - status reporting and logout
    """

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        store: Optional[CredentialStore] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        console: Optional[Console] = None,
        callback_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
        localhost_flow_factory: Optional[Callable[[], LocalhostFlow]] = None,
        device_flow_factory: Optional[Callable[[], DeviceFlow]] = None,
    ):
        self.config = config or ProviderConfig.from_settings()
        self.store = store or create_credential_store()
        self.http_client = http_client
        self.console = console or Console()
        self.callback_timeout = callback_timeout if callback_timeout is not None else settings.OAUTH_CALLBACK_TIMEOUT
        self.clock = clock
        self.token_manager = TokenLifecycleManager(self.config, self.store, http_client=http_client, clock=clock)
        self._localhost_flow_factory = localhost_flow_factory or self._default_localhost_flow
        self._device_flow_factory = device_flow_factory or self._default_device_flow

    def _default_localhost_flow(self) -> LocalhostFlow:
        return LocalhostFlow(
            self.config,
            timeout=self.callback_timeout,
            http_client=self.http_client,
            console=self.console,
            clock=self.clock,
        )

    def _default_device_flow(self) -> DeviceFlow:
        return DeviceFlow(self.config, http_client=self.http_client, console=self.console)

    # Interactive sign-in
    async def initialize(self, preferred_method: str = METHOD_AUTO) -> StoredCredential:
        """Run an interactive flow and persist the resulting credential

        Args:
            preferred_method: "auto", "localhost" or "device". "auto" uses the
                device flow only when the localhost flow cannot be started.

        Returns:
            The stored credential record

        Raises:
            ConfigurationMissing: if client credentials are not configured
            FlowDenied, FlowTimeout, FlowUnavailable: from the chosen flow
        """
        if preferred_method not in FLOW_METHODS:
            raise ValueError(f"Unknown authentication method: {preferred_method!r} (expected one of {', '.join(FLOW_METHODS)})")
        self.config.validate()

        tokens = await self._run_flow(preferred_method)

        email = extract_email(tokens.id_token)
        if email is None:
            logger.info("No email found in identity token")

        record = StoredCredential(
            tokens=tokens,
            email=email,
            scopes=list(self.config.scopes),
            created_at=self.clock(),
        )
        self.store.store(record)
        self.token_manager.remember(email)
        return record

    async def _run_flow(self, method: str) -> TokenBundle:
        if method == METHOD_DEVICE:
            return await self._device_flow_factory().run()

        try:
            return await self._localhost_flow_factory().run()
        except FlowUnavailable as e:
            if method != METHOD_AUTO:
                raise
            logger.warning(f"Localhost flow unavailable, falling back to device flow: {e.message}")
            self.console.print("[yellow]Could not start the local sign-in server, switching to device sign-in.[/yellow]")
            return await self._device_flow_factory().run()

    async def logout(self, revoke: bool = True) -> bool:
        """Remove the stored credential everywhere, revoking it first if asked

        Revocation is best-effort; local deletion always happens.

        Returns:
            True if a session existed
        """
        existed = False
        record = None
        try:
            record = self.token_manager.load()
            existed = record is not None
        except CredentialStoreCorrupted as e:
            logger.warning(f"Removing unreadable credentials: {e.message}")
            existed = True

        if revoke and record is not None:
            try:
                await revoke_token(self.config, record.tokens.access_token, client=self.http_client)
            except AuthError as e:
                logger.warning(f"Token revocation failed, removing local credentials anyway: {e.message}")

        self.store.delete(record.email if record else None)
        self.token_manager.forget()
        return existed

    # Status
    def get_auth_status(self) -> AuthStatus:
        """Read-only status projection; makes no network calls"""
        record = self.token_manager.load()
        if record is None:
            return AuthStatus(authenticated=False)

        expiry = TokenExpiry.from_bundle(record.tokens, now=self.clock())
        return AuthStatus(
            authenticated=True,
            email=record.email,
            scopes=list(record.scopes),
            expires_at=expiry.expires_at if expiry else None,
            is_expired=expiry.is_expired if expiry else None,
            minutes_until_expiry=expiry.minutes_until_expiry if expiry else None,
            storage_kind=self.store.storage_kind(record.email),
            last_refreshed_at=(
                datetime.fromtimestamp(record.last_refreshed_at) if record.last_refreshed_at else None
            ),
        )

    def get_token_expiry(self) -> Optional[TokenExpiry]:
        return self.token_manager.get_token_expiry()

    def is_authenticated(self) -> bool:
        try:
            return self.token_manager.load() is not None
        except CredentialStoreCorrupted:
            return False

    def get_user_email(self) -> Optional[str]:
        record = self.token_manager.load()
        return record.email if record else None

    def is_device_flow_supported(self) -> bool:
        return bool(self.config.client_id and self.config.device_authorization_endpoint)

    # Tokens
    async def get_valid_access_token(self) -> str:
        """Access token valid for at least five more minutes"""
        return await self.token_manager.get_valid_access_token()

    def get_valid_access_token_sync(self) -> str:
        return self.token_manager.get_valid_access_token_sync()

    async def refresh(self) -> StoredCredential:
        """Force a token refresh"""
        return await self.token_manager.refresh()


__all__ = [
    "OAuthManager",
    "ProviderConfig",
    "StoredCredential",
    "TokenBundle",
    "TokenExpiry",
    "AuthStatus",
    "CredentialStore",
    "KeyringVault",
    "TokenLifecycleManager",
    "LocalhostFlow",
    "DeviceFlow",
    "create_credential_store",
]
