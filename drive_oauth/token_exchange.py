"""
Provider token endpoint calls: code exchange, refresh, device grant, revocation
"""
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, NamedTuple, Optional

import httpx

from settings import HTTP_TIMEOUT

from .constants import GRANT_AUTHORIZATION_CODE, GRANT_DEVICE_CODE, GRANT_REFRESH_TOKEN
from .errors import NetworkError, OAuthProviderError, RefreshRejected
from .models import DeviceAuthorization, ProviderConfig, TokenBundle
from .pkce import is_valid_code_verifier

logger = logging.getLogger(__name__)

FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


class DevicePollResult(NamedTuple):
    """One device token poll: tokens on success, otherwise the OAuth error code"""
    tokens: Optional[TokenBundle] = None
    error: Optional[str] = None
    description: Optional[str] = None
    status_code: Optional[int] = None


@asynccontextmanager
async def _http_client(client: Optional[httpx.AsyncClient]) -> AsyncIterator[httpx.AsyncClient]:
    """Use the caller's client, or open a short-lived one"""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as own_client:
        yield own_client


def _error_payload(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _provider_error(response: httpx.Response, action: str) -> OAuthProviderError:
    data = _error_payload(response)
    error = data.get("error")
    if isinstance(error, dict):
        # Some Google endpoints nest the error object
        description = error.get("message")
        error = error.get("status") or "server_error"
    else:
        description = data.get("error_description")
    return OAuthProviderError(
        error=error or f"http_{response.status_code}",
        description=description,
        status_code=response.status_code,
        action=action,
    )


async def _post_form(
    client: Optional[httpx.AsyncClient],
    url: str,
    data: Dict[str, str],
    action: str,
    params: Optional[Dict[str, str]] = None,
) -> httpx.Response:
    async with _http_client(client) as http:
        try:
            return await http.post(url, data=data, params=params, headers=FORM_HEADERS)
        except httpx.RequestError as e:
            logger.error(f"{action} failed: {type(e).__name__}: {e}")
            raise NetworkError(f"{action} failed: could not reach {url}") from e


def _token_payload(response: httpx.Response, action: str) -> Dict[str, Any]:
    data = _error_payload(response)
    if not data.get("access_token"):
        raise OAuthProviderError(
            "invalid_response",
            "token response did not contain an access token",
            status_code=response.status_code,
            action=action,
        )
    return data


def _parse_tokens(response: httpx.Response, action: str, now: float) -> TokenBundle:
    data = _token_payload(response, action)
    try:
        return TokenBundle.from_response(data, now=now)
    except (TypeError, ValueError) as e:
        raise OAuthProviderError(
            "invalid_response",
            f"token response has an unusable expires_in: {data.get('expires_in')!r}",
            status_code=response.status_code,
            action=action,
        ) from e


async def exchange_code_for_tokens(
    config: ProviderConfig,
    code: str,
    code_verifier: str,
    redirect_uri: str,
    client: Optional[httpx.AsyncClient] = None,
    clock: Callable[[], float] = time.time,
) -> TokenBundle:
    """
    Exchange an authorization code for access and refresh tokens.

    Args:
        config: Provider configuration
        code: Authorization code from the loopback callback
        code_verifier: PKCE verifier matching the challenge sent earlier
        redirect_uri: Exact redirect URI used in the authorization request
        client: Optional shared HTTP client

    Returns:
        TokenBundle with an absolute expiry

    Raises:
        OAuthProviderError: if the provider rejects the exchange
        NetworkError: if the token endpoint cannot be reached
    """
    if not is_valid_code_verifier(code_verifier):
        raise ValueError("PKCE code verifier is malformed")

    action = "Token exchange"
    data = {
        "grant_type": GRANT_AUTHORIZATION_CODE,
        "code": code,
        "code_verifier": code_verifier,
        "redirect_uri": redirect_uri,
        **config.client_credentials(),
    }
    response = await _post_form(client, config.token_endpoint, data, action)
    if response.status_code != 200:
        error = _provider_error(response, action)
        logger.error(f"Token exchange failed: {error.error} (HTTP {response.status_code})")
        raise error

    logger.info("Authorization code exchanged for tokens")
    return _parse_tokens(response, action, clock())


async def refresh_access_token(
    config: ProviderConfig,
    refresh_token: str,
    client: Optional[httpx.AsyncClient] = None,
    clock: Callable[[], float] = time.time,
) -> TokenBundle:
    """
    Refresh the access token.

    The returned bundle carries only what the provider sent back; merging
    with the stored bundle (refresh token rotation) is the caller's job.

    Raises:
        RefreshRejected: if the provider answers ``invalid_grant``
        OAuthProviderError: for any other OAuth error
        NetworkError: if the token endpoint cannot be reached
    """
    action = "Token refresh"
    data = {
        "grant_type": GRANT_REFRESH_TOKEN,
        "refresh_token": refresh_token,
        **config.client_credentials(),
    }
    response = await _post_form(client, config.token_endpoint, data, action)
    if response.status_code != 200:
        error = _provider_error(response, action)
        logger.error(f"Token refresh failed: {error.error} (HTTP {response.status_code})")
        if error.error == "invalid_grant":
            raise RefreshRejected("Refresh token was rejected by the provider (revoked or expired)") from error
        raise error

    return _parse_tokens(response, action, clock())


async def request_device_code(
    config: ProviderConfig,
    client: Optional[httpx.AsyncClient] = None,
) -> DeviceAuthorization:
    """Start the device authorization grant (RFC 8628)"""
    action = "Device authorization"
    data = {"client_id": config.client_id, "scope": config.scope_string}
    response = await _post_form(client, config.device_authorization_endpoint, data, action)
    if response.status_code != 200:
        raise _provider_error(response, action)

    payload = _error_payload(response)
    try:
        return DeviceAuthorization.from_response(payload)
    except (KeyError, TypeError, ValueError) as e:
        raise OAuthProviderError(
            "invalid_response",
            f"device authorization response is missing {e}",
            status_code=response.status_code,
            action=action,
        ) from e


async def poll_device_token(
    config: ProviderConfig,
    device_code: str,
    client: Optional[httpx.AsyncClient] = None,
    clock: Callable[[], float] = time.time,
) -> DevicePollResult:
    """
    Poll the token endpoint once for a device code.

    Returns:
        DevicePollResult with tokens on approval, or the OAuth error code
        (``authorization_pending``, ``slow_down``, ...) otherwise
    """
    action = "Device token poll"
    data = {
        "grant_type": GRANT_DEVICE_CODE,
        "device_code": device_code,
        **config.client_credentials(),
    }
    response = await _post_form(client, config.token_endpoint, data, action)
    if response.status_code == 200:
        return DevicePollResult(tokens=_parse_tokens(response, action, clock()))

    error = _provider_error(response, action)
    return DevicePollResult(
        error=error.error,
        description=error.description,
        status_code=response.status_code,
    )


async def revoke_token(
    config: ProviderConfig,
    token: str,
    client: Optional[httpx.AsyncClient] = None,
) -> None:
    """
    Revoke a token at the provider; the token travels as a query parameter.

    Raises:
        OAuthProviderError: if the provider refuses the revocation
        NetworkError: if the revocation endpoint cannot be reached
    """
    action = "Token revocation"
    response = await _post_form(client, config.revoke_endpoint, {}, action, params={"token": token})
    if response.status_code != 200:
        raise _provider_error(response, action)
    logger.info("Token revoked at provider")
