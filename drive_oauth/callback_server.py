"""
Loopback OAuth callback server
"""
import asyncio
import html
import logging
from typing import Optional

from aiohttp import web

from .constants import CALLBACK_HOST, CALLBACK_PATH
from .errors import FlowDenied, FlowTimeout

logger = logging.getLogger(__name__)

SUCCESS_PAGE = """
<html>
    <head><title>Authentication Successful</title></head>
    <body>
        <h1>Authentication Successful!</h1>
        <p>You can now close this window and return to the terminal.</p>
        <script>
            setTimeout(function() {
                window.close();
            }, 2000);
        </script>
    </body>
</html>
"""

FAILURE_PAGE = """
<html>
    <head><title>Authentication Failed</title></head>
    <body>
        <h1>Authentication Failed</h1>
        <p>Error: {error}</p>
        <p>{description}</p>
        <p>You can close this window and return to the terminal.</p>
    </body>
</html>
"""

COMPLETED_PAGE = """
<html>
    <head><title>Already Completed</title></head>
    <body>
        <h1>Authentication already completed</h1>
        <p>This sign-in request was already handled. You can close this window.</p>
    </body>
</html>
"""


class OAuthCallbackServer:
    """Single-use HTTP listener on the loopback interface

    The first of {callback, timeout} settles the result; anything that
    arrives afterwards is ignored.
    """

    def __init__(self, host: str = CALLBACK_HOST, path: str = CALLBACK_PATH):
        self.host = host
        self.path = path
        self.port: Optional[int] = None
        self.app = web.Application()
        self.app.router.add_get(self.path, self._handle_callback)
        self.runner: Optional[web.AppRunner] = None
        self._result: Optional[asyncio.Future] = None
        self._closed = False
        self.close_count = 0

    @property
    def redirect_uri(self) -> str:
        if self.port is None:
            raise RuntimeError("Callback server is not listening")
        return f"http://{self.host}:{self.port}{self.path}"

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> int:
        """
        Bind to an OS-assigned port.

        Returns:
            The bound port

        Raises:
            OSError: if the listener cannot be bound
        """
        self._result = asyncio.get_running_loop().create_future()
        self.runner = web.AppRunner(self.app, access_log=None)
        await self.runner.setup()
        site = web.TCPSite(self.runner, host=self.host, port=0)
        await site.start()
        self.port = self.runner.addresses[0][1]
        logger.info(f"OAuth callback server listening on {self.host}:{self.port}")
        return self.port

    def _settle(self, code: Optional[str] = None, error: Optional[Exception] = None) -> bool:
        """Assign the result once; later writes are no-ops"""
        if self._result is None or self._result.done():
            return False
        if error is not None:
            self._result.set_exception(error)
        else:
            self._result.set_result(code)
        return True

    async def _handle_callback(self, request: web.Request) -> web.Response:
        if self._result is None or self._result.done():
            logger.info("Ignoring callback for an already completed sign-in")
            return web.Response(text=COMPLETED_PAGE, content_type="text/html", status=409)

        code = request.query.get("code")
        error = request.query.get("error")
        error_description = request.query.get("error_description")

        if error:
            logger.warning(f"OAuth callback returned error: {error}")
            self._settle(error=FlowDenied(
                f"Authorization was denied: {error}" + (f" ({error_description})" if error_description else "")
            ))
            page = FAILURE_PAGE.format(
                error=html.escape(error),
                description=html.escape(error_description or ""),
            )
            return web.Response(text=page, content_type="text/html", status=400)

        if not code:
            logger.warning("OAuth callback without authorization code")
            self._settle(error=FlowDenied("Authorization callback did not include a code"))
            page = FAILURE_PAGE.format(error="missing_code", description="No authorization code was received.")
            return web.Response(text=page, content_type="text/html", status=400)

        self._settle(code=code)
        return web.Response(text=SUCCESS_PAGE, content_type="text/html")

    async def wait_for_code(self, timeout: float) -> str:
        """
        Wait for the authorization code.

        Args:
            timeout: Maximum time to wait in seconds

        Returns:
            Authorization code

        Raises:
            FlowDenied: if the callback carried an error or no code
            FlowTimeout: if nothing arrived within ``timeout``
        """
        if self._result is None:
            raise RuntimeError("Callback server is not listening")
        loop = asyncio.get_running_loop()
        timer = loop.call_later(
            timeout,
            lambda: self._settle(error=FlowTimeout(f"Timed out after {int(timeout)} seconds waiting for sign-in")),
        )
        try:
            return await self._result
        finally:
            timer.cancel()

    async def stop(self) -> None:
        """Close the listener; safe to call more than once"""
        if self._closed:
            return
        self._closed = True
        self.close_count += 1
        if self._result is not None and not self._result.done():
            self._result.cancel()
        if self.runner is not None:
            await self.runner.cleanup()
            logger.debug("OAuth callback server stopped")
