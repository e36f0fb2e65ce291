"""Exception hierarchy for the Drive OAuth client

Every error carries a ``hint`` with the concrete next step for the user, so
callers can print ``str(error)`` without adding their own advice.
"""

from typing import Iterable, Optional

from .constants import INIT_COMMAND

REAUTH_HINT = f'Run "{INIT_COMMAND}" to re-authenticate.'


class AuthError(Exception):
    """Base class for all authentication errors"""

    default_hint = REAUTH_HINT

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.hint = hint if hint is not None else self.default_hint

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message}. {self.hint}"
        return self.message


class ConfigurationMissing(AuthError):
    """OAuth client credentials are not configured"""

    def __init__(self, missing: Iterable[str]):
        self.missing = list(missing)
        names = ", ".join(self.missing)
        hint = (
            "Add them to your environment or .env file, e.g.\n"
            + "\n".join(f"  {name}=..." for name in self.missing)
            + "\nCreate a Desktop app OAuth client at https://console.cloud.google.com/apis/credentials"
        )
        super().__init__(f"Missing OAuth client configuration: {names}", hint)


class NotAuthenticated(AuthError):
    """No stored credential exists"""

    default_hint = f'Run "{INIT_COMMAND}" to authenticate.'


class ReauthRequired(AuthError):
    """The access token expired and there is no refresh token to renew it"""


class RefreshRejected(AuthError):
    """The provider rejected the refresh token (revoked or expired)"""


class FlowTimeout(AuthError):
    """No user completion within the allotted window"""

    default_hint = f'Run "{INIT_COMMAND}" again and complete the sign-in in time.'


class DeviceCodeExpired(FlowTimeout):
    """The device code lifetime elapsed before the user approved"""

    default_hint = f'Device code expired, restart the flow with "{INIT_COMMAND} --device".'


class FlowDenied(AuthError):
    """The user or provider declined the authorization"""

    default_hint = f'Run "{INIT_COMMAND}" again and approve the requested access.'


class FlowUnavailable(AuthError):
    """An interactive flow could not be established at all"""

    default_hint = f'Use the device flow instead: "{INIT_COMMAND} --device".'


class NetworkError(AuthError):
    """Transport-level failure talking to an OAuth endpoint"""

    default_hint = "Check your network connection and try again."


class OAuthProviderError(AuthError):
    """The provider answered with an OAuth error response"""

    def __init__(
        self,
        error: str,
        description: Optional[str] = None,
        status_code: Optional[int] = None,
        action: str = "OAuth request",
        hint: Optional[str] = None,
    ):
        self.error = error
        self.description = description
        self.status_code = status_code
        message = f"{action} failed: {error}"
        if description:
            message += f" ({description})"
        if status_code is not None:
            message += f" [HTTP {status_code}]"
        super().__init__(message, hint)


class CredentialStoreCorrupted(AuthError):
    """The stored credential cannot be parsed"""

    def __init__(self, location: str, reason: str):
        self.location = location
        super().__init__(
            f"Stored credentials at {location} are unreadable: {reason}",
            f'Delete them with "lighthouse-auth logout --no-revoke" and run "{INIT_COMMAND}".',
        )


class StorageUnavailable(AuthError):
    """The OS keyring is not usable; informational, never raised to callers"""

    default_hint = "Credentials are kept in the protected file store instead."
