"""
Identity token (JWT) payload decoding
"""
import base64
import binascii
import json
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def decode_jwt(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode a JWT payload without verifying the signature.

    The token comes straight from the provider's token endpoint over TLS,
    so only the claims are read here.

    Args:
        token: JWT string (header.payload.signature)

    Returns:
        Decoded payload as dictionary, or None if the token is malformed
    """
    if not token:
        return None

    parts = token.split(".")
    if len(parts) != 3:
        logger.debug(f"Invalid JWT format: expected 3 parts, got {len(parts)}")
        return None

    payload = parts[1]
    # base64url without padding
    payload += "=" * (-len(payload) % 4)

    try:
        claims = json.loads(base64.urlsafe_b64decode(payload).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        logger.debug(f"Error decoding JWT payload: {e}")
        return None

    if not isinstance(claims, dict):
        return None
    return claims


def extract_email(id_token: Optional[str]) -> Optional[str]:
    """
    Extract the user's email from an OpenID Connect identity token.

    Args:
        id_token: Identity token returned alongside the access token

    Returns:
        Email address, or None if absent or undecodable
    """
    if not id_token:
        return None
    claims = decode_jwt(id_token)
    if not claims:
        return None
    email = claims.get("email")
    return email if isinstance(email, str) and email else None
