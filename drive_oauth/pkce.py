"""PKCE (Proof Key for Code Exchange) generation, RFC 7636 S256"""

import base64
import hashlib
import re
import secrets

from .models import PKCEPair

_VERIFIER_PATTERN = re.compile(r"^[A-Za-z0-9\-._~]{43,128}$")


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def generate_code_verifier() -> str:
    """Generate a high-entropy code verifier

    Returns:
        43 character base64url string built from 32 random bytes
    """
    return _b64url(secrets.token_bytes(32))


def generate_code_challenge(verifier: str) -> str:
    """Derive the S256 challenge for a verifier"""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def is_valid_code_verifier(verifier: str) -> bool:
    """Check length (43-128) and the unreserved character set"""
    return bool(verifier) and _VERIFIER_PATTERN.match(verifier) is not None


def generate_pkce() -> PKCEPair:
    """
    Generate a fresh PKCE pair for one authorization attempt.

    Returns:
        PKCEPair: Tuple of (verifier, challenge)
    """
    verifier = generate_code_verifier()
    return PKCEPair(verifier=verifier, challenge=generate_code_challenge(verifier))
