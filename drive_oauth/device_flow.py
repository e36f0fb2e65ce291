"""
Device authorization grant (RFC 8628) for machines without a usable browser
"""
import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable, Optional

import httpx
from rich.console import Console
from rich.panel import Panel

from .constants import SLOW_DOWN_STEP
from .errors import DeviceCodeExpired, FlowDenied, OAuthProviderError
from .models import DeviceAuthorization, ProviderConfig, TokenBundle
from .token_exchange import poll_device_token, request_device_code

logger = logging.getLogger(__name__)


class DeviceFlowState(str, Enum):
    REQUESTING = "requesting"
    DISPLAYED = "displayed"
    POLLING = "polling"
    DONE = "done"
    EXPIRED = "expired"
    FAILED = "failed"


class DeviceFlow:
    """Shows a user code, then polls the token endpoint until the user approves

    Args:
        config: Provider configuration
        http_client: Optional shared HTTP client
        console: Where the verification URL and user code are printed
        sleep: Awaitable sleep, injectable for tests
        clock: Monotonic clock used for the code lifetime
        max_poll_interval: Upper bound for the interval after ``slow_down``;
            None leaves it uncapped
    """

    def __init__(
        self,
        config: ProviderConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        console: Optional[Console] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        max_poll_interval: Optional[float] = None,
    ):
        self.config = config
        self.http_client = http_client
        self.console = console or Console()
        self.sleep = sleep
        self.clock = clock
        self.max_poll_interval = max_poll_interval
        self.state = DeviceFlowState.REQUESTING
        self.authorization: Optional[DeviceAuthorization] = None
        self.poll_count = 0

    async def run(self) -> TokenBundle:
        """
        Execute the flow.

        Raises:
            DeviceCodeExpired: if the code lifetime elapsed before approval
            FlowDenied: if the user declined
            OAuthProviderError: for any other provider error
        """
        try:
            self.authorization = await request_device_code(self.config, client=self.http_client)
            self._display(self.authorization)
            self.state = DeviceFlowState.DISPLAYED
            tokens = await self._poll(self.authorization)
        except DeviceCodeExpired:
            self.state = DeviceFlowState.EXPIRED
            raise
        except Exception:
            self.state = DeviceFlowState.FAILED
            raise
        self.state = DeviceFlowState.DONE
        return tokens

    def _display(self, authorization: DeviceAuthorization):
        self.console.print(Panel.fit(
            f"Visit [bold cyan]{authorization.verification_url}[/bold cyan]\n"
            f"and enter the code: [bold yellow]{authorization.user_code}[/bold yellow]",
            title="Sign in on another device",
        ))
        minutes = max(1, authorization.expires_in // 60)
        self.console.print(f"[dim]Waiting for approval (code expires in {minutes} minutes)...[/dim]")

    async def _poll(self, authorization: DeviceAuthorization) -> TokenBundle:
        self.state = DeviceFlowState.POLLING
        interval = float(authorization.interval)
        deadline = self.clock() + authorization.expires_in

        while True:
            await self.sleep(interval)
            if self.clock() >= deadline:
                raise DeviceCodeExpired("Device code expired before the sign-in was approved")

            self.poll_count += 1
            result = await poll_device_token(self.config, authorization.device_code, client=self.http_client)
            if result.tokens is not None:
                logger.info("Device authorization approved")
                return result.tokens

            if result.error == "authorization_pending":
                continue
            if result.error == "slow_down":
                interval += SLOW_DOWN_STEP
                if self.max_poll_interval is not None:
                    interval = min(interval, self.max_poll_interval)
                logger.debug(f"Provider asked to slow down, polling every {interval}s")
                continue
            if result.error == "access_denied":
                raise FlowDenied("Sign-in was declined on the verification page")
            if result.error == "expired_token":
                raise DeviceCodeExpired("Device code expired before the sign-in was approved")

            raise OAuthProviderError(
                result.error or "unknown_error",
                result.description,
                status_code=result.status_code,
                action="Device authorization",
            )
