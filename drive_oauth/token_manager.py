"""
OAuth token lifecycle management
"""
import asyncio
import logging
import time
from typing import Callable, Optional

import httpx

from .constants import REFRESH_MARGIN_SECONDS
from .errors import NotAuthenticated, ReauthRequired
from .models import ProviderConfig, StoredCredential, TokenExpiry
from .storage import CredentialStore
from .token_exchange import refresh_access_token

logger = logging.getLogger(__name__)


class TokenLifecycleManager:
    """Hands out valid access tokens, refreshing the stored credential when stale

    At most one refresh request is in flight per manager: callers that find
    the token stale while a refresh is running await that same refresh.
    """

    def __init__(
        self,
        config: ProviderConfig,
        store: CredentialStore,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
        refresh_margin: float = REFRESH_MARGIN_SECONDS,
    ):
        self.config = config
        self.store = store
        self.http_client = http_client
        self.clock = clock
        self.refresh_margin = refresh_margin
        self._email_hint: Optional[str] = None
        self._refresh_task: Optional[asyncio.Task] = None

    def load(self) -> Optional[StoredCredential]:
        """Read the stored credential, remembering the email for keyring lookups"""
        record = self.store.retrieve(self._email_hint)
        if record is not None and record.email:
            self._email_hint = record.email
        return record

    def remember(self, email: Optional[str]):
        """Use this email as the keyring account for later reads"""
        self._email_hint = email

    def forget(self):
        """Drop cached identity after logout"""
        self._email_hint = None

    def _require_record(self) -> StoredCredential:
        record = self.load()
        if record is None:
            raise NotAuthenticated("Not authenticated: no stored credentials")
        return record

    async def get_valid_access_token(self) -> str:
        """
        Get an access token that is valid for at least the refresh margin.

        Returns:
            Access token string

        Raises:
            NotAuthenticated: if no credential is stored
            ReauthRequired: if the token is stale and cannot be refreshed
            RefreshRejected: if the provider rejected the refresh token
        """
        record = self._require_record()
        if not record.tokens.is_expired(self.refresh_margin, now=self.clock()):
            return record.tokens.access_token

        logger.info("Access token expired or expiring soon, refreshing")
        refreshed = await self._refresh_shared(record)
        return refreshed.tokens.access_token

    async def refresh(self) -> StoredCredential:
        """Force a refresh regardless of expiry"""
        record = self._require_record()
        return await self._refresh_shared(record)

    async def _refresh_shared(self, record: StoredCredential) -> StoredCredential:
        task = self._refresh_task
        if task is None:
            task = asyncio.ensure_future(self._refresh(record))
            self._refresh_task = task
            task.add_done_callback(self._refresh_finished)
        else:
            logger.debug("Refresh already in flight, waiting for it")
        # One caller being cancelled must not cancel the refresh for the others
        return await asyncio.shield(task)

    def _refresh_finished(self, task: asyncio.Task):
        if self._refresh_task is task:
            self._refresh_task = None
        if not task.cancelled():
            # Mark the exception retrieved; awaiters re-raise it themselves
            task.exception()

    async def _refresh(self, record: StoredCredential) -> StoredCredential:
        refresh_token = record.tokens.refresh_token
        if not refresh_token:
            raise ReauthRequired("Access token expired and no refresh token is available")

        refreshed = await refresh_access_token(
            self.config,
            refresh_token,
            client=self.http_client,
            clock=self.clock,
        )
        updated = record.with_refreshed_tokens(refreshed, now=self.clock())
        self.store.store(updated)
        logger.info("Access token refreshed")
        return updated

    def get_token_expiry(self) -> Optional[TokenExpiry]:
        """Expiry report for display; no margin applied, never refreshes"""
        record = self.load()
        if record is None:
            return None
        return TokenExpiry.from_bundle(record.tokens, now=self.clock())

    def get_valid_access_token_sync(self) -> str:
        """
        Blocking variant of ``get_valid_access_token`` for synchronous callers.

        Raises:
            RuntimeError: when called from inside a running event loop
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self.get_valid_access_token())
        raise RuntimeError(
            "get_valid_access_token_sync() cannot be used inside a running event loop; "
            "await get_valid_access_token() instead"
        )
