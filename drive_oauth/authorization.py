"""OAuth authorization URL construction and browser hand-off"""

import logging
import webbrowser
from typing import Callable, Optional
from urllib.parse import urlencode

from rich.console import Console

from .models import PKCEPair, ProviderConfig

logger = logging.getLogger(__name__)


def build_authorization_url(config: ProviderConfig, redirect_uri: str, pkce: PKCEPair) -> str:
    """Construct the authorization URL for the loopback flow

    ``access_type=offline`` and ``prompt=consent`` make Google issue a
    refresh token even when the user granted access before.

    Returns:
        Full authorization URL
    """
    params = {
        "client_id": config.client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": config.scope_string,
        "code_challenge": pkce.challenge,
        "code_challenge_method": "S256",
        "access_type": "offline",
        "prompt": "consent",
    }
    return f"{config.authorization_endpoint}?{urlencode(params)}"


def present_authorization_url(
    url: str,
    console: Optional[Console] = None,
    open_browser: Callable[[str], bool] = webbrowser.open,
) -> bool:
    """Open the URL in the default browser and always print it for manual use

    Returns:
        True if a browser was launched
    """
    console = console or Console()
    try:
        opened = bool(open_browser(url))
    except webbrowser.Error as e:
        logger.warning(f"Could not launch a browser: {e}")
        opened = False

    if opened:
        console.print("\n[bold]Opening your browser to sign in...[/bold]")
        console.print("If it did not open, visit this URL:")
    else:
        console.print("\n[bold]Open this URL in your browser to sign in:[/bold]")
    console.print(url, soft_wrap=True, highlight=False)
    return opened
