"""
Authorization-code flow with a loopback redirect
"""
import logging
import time
import webbrowser
from enum import Enum
from typing import Callable, Optional

import httpx
from rich.console import Console

from .authorization import build_authorization_url, present_authorization_url
from .callback_server import OAuthCallbackServer
from .errors import FlowUnavailable
from .models import ProviderConfig, TokenBundle
from .pkce import generate_pkce
from .token_exchange import exchange_code_for_tokens

logger = logging.getLogger(__name__)


class LocalhostFlowState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    AWAITING_REDIRECT = "awaiting_redirect"
    EXCHANGING = "exchanging"
    DONE = "done"
    FAILED = "failed"


class LocalhostFlow:
    """Runs one browser sign-in against a temporary loopback listener"""

    def __init__(
        self,
        config: ProviderConfig,
        timeout: float = 300,
        http_client: Optional[httpx.AsyncClient] = None,
        console: Optional[Console] = None,
        open_browser: Optional[Callable[[str], bool]] = None,
        server_factory: Callable[[], OAuthCallbackServer] = OAuthCallbackServer,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.timeout = timeout
        self.http_client = http_client
        self.console = console or Console()
        self.open_browser = open_browser or webbrowser.open
        self.server_factory = server_factory
        self.clock = clock
        self.state = LocalhostFlowState.IDLE
        self.server: Optional[OAuthCallbackServer] = None

    async def run(self) -> TokenBundle:
        """
        Execute the flow.

        Returns:
            TokenBundle from the code exchange

        Raises:
            FlowUnavailable: if the loopback listener could not be bound
            FlowDenied: if the user declined or the callback had no code
            FlowTimeout: if the user did not finish in time
        """
        pkce = generate_pkce()
        self.server = self.server_factory()
        try:
            try:
                await self.server.start()
            except OSError as e:
                self.state = LocalhostFlowState.FAILED
                logger.warning(f"Could not start loopback listener: {e}")
                raise FlowUnavailable(f"Could not start the local callback server: {e}") from e
            self.state = LocalhostFlowState.LISTENING

            redirect_uri = self.server.redirect_uri
            url = build_authorization_url(self.config, redirect_uri, pkce)
            present_authorization_url(url, self.console, self.open_browser)
            self.console.print(f"[dim]Waiting for sign-in (up to {int(self.timeout // 60)} minutes)...[/dim]")
            self.state = LocalhostFlowState.AWAITING_REDIRECT

            code = await self.server.wait_for_code(self.timeout)
            # Listener is no longer needed once a code is in hand
            await self.server.stop()

            self.state = LocalhostFlowState.EXCHANGING
            tokens = await exchange_code_for_tokens(
                self.config,
                code,
                pkce.verifier,
                redirect_uri,
                client=self.http_client,
                clock=self.clock,
            )
            self.state = LocalhostFlowState.DONE
            return tokens
        except Exception:
            self.state = LocalhostFlowState.FAILED
            raise
        finally:
            await self.server.stop()
