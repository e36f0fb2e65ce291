"""Data models for Google Drive OAuth authentication"""

import math
import time
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional

import settings

from .constants import DEFAULT_POLL_INTERVAL, REFRESH_MARGIN_SECONDS
from .errors import ConfigurationMissing, CredentialStoreCorrupted


class PKCEPair(NamedTuple):
    """PKCE code verifier and challenge pair"""
    verifier: str
    challenge: str


@dataclass
class ProviderConfig:
    """OAuth client registration and provider endpoints"""
    client_id: str
    client_secret: str
    authorization_endpoint: str
    token_endpoint: str
    device_authorization_endpoint: str
    revoke_endpoint: str
    scopes: List[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls) -> "ProviderConfig":
        """Build the configuration from the ``settings`` module"""
        return cls(
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            authorization_endpoint=settings.AUTHORIZATION_ENDPOINT,
            token_endpoint=settings.TOKEN_ENDPOINT,
            device_authorization_endpoint=settings.DEVICE_AUTHORIZATION_ENDPOINT,
            revoke_endpoint=settings.REVOKE_ENDPOINT,
            scopes=list(settings.SCOPES),
        )

    @property
    def scope_string(self) -> str:
        return " ".join(self.scopes)

    def validate(self) -> None:
        """Fail fast when the client credentials are absent

        Raises:
            ConfigurationMissing: naming every missing value
        """
        missing = []
        if not self.client_id:
            missing.append("GOOGLE_CLIENT_ID")
        if not self.client_secret:
            missing.append("GOOGLE_CLIENT_SECRET")
        if missing:
            raise ConfigurationMissing(missing)

    def client_credentials(self) -> Dict[str, str]:
        """Form fields identifying the client; secret only when configured"""
        data = {"client_id": self.client_id}
        if self.client_secret:
            data["client_secret"] = self.client_secret
        return data


@dataclass
class TokenBundle:
    """OAuth token response from the provider

    Attributes:
        access_token: Bearer token for API requests
        refresh_token: Token used to obtain new access tokens (may be absent)
        scope: Space separated scopes actually granted
        token_type: Token type, normally "Bearer"
        expires_at: Absolute expiry as epoch seconds, None if unknown
        id_token: OpenID Connect identity token (JWT), if requested
    """
    access_token: str
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
    token_type: str = "Bearer"
    expires_at: Optional[float] = None
    id_token: Optional[str] = None

    @classmethod
    def from_response(cls, data: Dict[str, Any], now: Optional[float] = None) -> "TokenBundle":
        """Build a bundle from a token endpoint JSON payload

        ``expires_in`` is relative, so it is anchored to ``now``.
        """
        issued_at = time.time() if now is None else now
        expires_in = data.get("expires_in")
        expires_at = issued_at + float(expires_in) if expires_in else None
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or None,
            scope=data.get("scope"),
            token_type=data.get("token_type") or "Bearer",
            expires_at=expires_at,
            id_token=data.get("id_token") or None,
        )

    def is_expired(self, margin_seconds: float = REFRESH_MARGIN_SECONDS, now: Optional[float] = None) -> bool:
        """Check expiry with a safety margin; unknown expiry counts as expired"""
        if self.expires_at is None:
            return True
        current = time.time() if now is None else now
        return current >= self.expires_at - margin_seconds

    def merge_refresh(self, refreshed: "TokenBundle") -> "TokenBundle":
        """Apply a refresh response on top of this bundle

        Providers may omit the refresh token (no rotation) as well as the
        identity token and scope; the previous values are kept in that case.
        """
        return TokenBundle(
            access_token=refreshed.access_token,
            refresh_token=refreshed.refresh_token or self.refresh_token,
            scope=refreshed.scope or self.scope,
            token_type=refreshed.token_type or self.token_type,
            expires_at=refreshed.expires_at,
            id_token=refreshed.id_token or self.id_token,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenBundle":
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope"),
            token_type=data.get("token_type") or "Bearer",
            expires_at=data.get("expires_at"),
            id_token=data.get("id_token"),
        )


@dataclass
class StoredCredential:
    """The persisted unit: tokens plus identity and bookkeeping"""
    tokens: TokenBundle
    email: Optional[str] = None
    scopes: List[str] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    last_refreshed_at: Optional[float] = None

    def with_refreshed_tokens(self, refreshed: TokenBundle, now: Optional[float] = None) -> "StoredCredential":
        """Return a copy carrying the merged tokens and a new refresh timestamp"""
        return replace(
            self,
            tokens=self.tokens.merge_refresh(refreshed),
            last_refreshed_at=time.time() if now is None else now,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tokens": self.tokens.to_dict(),
            "email": self.email,
            "scopes": list(self.scopes),
            "created_at": self.created_at,
            "last_refreshed_at": self.last_refreshed_at,
        }

    @classmethod
    def from_dict(cls, data: Any, location: str = "credential store") -> "StoredCredential":
        """Parse a stored payload

        Raises:
            CredentialStoreCorrupted: if the payload does not have the expected shape
        """
        try:
            tokens = data["tokens"]
            if not isinstance(tokens, dict) or not tokens.get("access_token"):
                raise ValueError("missing access token")
            return cls(
                tokens=TokenBundle.from_dict(tokens),
                email=data.get("email"),
                scopes=list(data.get("scopes") or []),
                created_at=data["created_at"],
                last_refreshed_at=data.get("last_refreshed_at"),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise CredentialStoreCorrupted(location, str(e) or type(e).__name__) from e


@dataclass
class DeviceAuthorization:
    """Device/user code pair issued by the device authorization endpoint"""
    device_code: str
    user_code: str
    verification_url: str
    expires_in: int
    interval: int = DEFAULT_POLL_INTERVAL

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "DeviceAuthorization":
        # Google answers with verification_url, RFC 8628 names it verification_uri
        verification_url = data.get("verification_url") or data.get("verification_uri")
        return cls(
            device_code=data["device_code"],
            user_code=data["user_code"],
            verification_url=verification_url,
            expires_in=int(data["expires_in"]),
            interval=int(data.get("interval") or DEFAULT_POLL_INTERVAL),
        )


@dataclass
class TokenExpiry:
    """Expiry report used for status display only"""
    expires_at: datetime
    is_expired: bool
    minutes_until_expiry: Optional[int] = None

    @classmethod
    def from_bundle(cls, tokens: TokenBundle, now: Optional[float] = None) -> Optional["TokenExpiry"]:
        if tokens.expires_at is None:
            return None
        current = time.time() if now is None else now
        # Literal wall-clock comparison, no safety margin
        is_expired = tokens.is_expired(margin_seconds=0, now=current)
        minutes = None if is_expired else math.floor((tokens.expires_at - current) / 60)
        return cls(
            expires_at=datetime.fromtimestamp(tokens.expires_at),
            is_expired=is_expired,
            minutes_until_expiry=minutes,
        )


@dataclass
class AuthStatus:
    """Read-only projection of the stored credential for status reporting"""
    authenticated: bool
    email: Optional[str] = None
    scopes: List[str] = field(default_factory=list)
    expires_at: Optional[datetime] = None
    is_expired: Optional[bool] = None
    minutes_until_expiry: Optional[int] = None
    storage_kind: Optional[str] = None
    last_refreshed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        if not self.authenticated:
            return {"authenticated": False}
        return {
            "authenticated": True,
            "email": self.email,
            "scopes": list(self.scopes),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "is_expired": self.is_expired,
            "minutes_until_expiry": self.minutes_until_expiry,
            "storage_kind": self.storage_kind,
            "last_refreshed_at": self.last_refreshed_at.isoformat() if self.last_refreshed_at else None,
        }
