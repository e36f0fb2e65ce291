"""OS keyring adapter with tri-state results

Wraps the ``keyring`` library so callers can tell "no keyring on this
machine" apart from "the keyring refused this operation". Nothing here
raises; every operation reports through a ``VaultResult``.
"""

import logging
from enum import Enum
from typing import Any, NamedTuple, Optional

import keyring
from keyring.backends import fail
from keyring.errors import PasswordDeleteError

from .errors import StorageUnavailable

logger = logging.getLogger(__name__)


class VaultStatus(str, Enum):
    SUCCEEDED = "succeeded"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


class VaultResult(NamedTuple):
    """Outcome of a vault operation"""
    status: VaultStatus
    value: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.status is VaultStatus.SUCCEEDED


class KeyringVault:
    """Secrets in the OS keyring, addressed by service name and account"""

    def __init__(self, service_name: str, backend: Any = None, enabled: bool = True):
        self.service_name = service_name
        self.backend = backend
        self.available = enabled and self._probe()
        logger.debug(f"Keyring vault for {service_name} (available: {self.available})")

    def _probe(self) -> bool:
        """Resolve the backend once; the fail backend means no keyring"""
        try:
            if self.backend is None:
                self.backend = keyring.get_keyring()
        except Exception as e:
            logger.info(f"System keyring could not be loaded: {e}")
            return False
        if isinstance(self.backend, fail.Keyring):
            logger.info("No system keyring available, using file storage only")
            return False
        return True

    def _unavailable(self) -> VaultResult:
        return VaultResult(VaultStatus.UNAVAILABLE, error=StorageUnavailable("System keyring is not available"))

    def get(self, account: str) -> VaultResult:
        """Read the secret for an account; a missing entry is a success with no value"""
        if not self.available:
            return self._unavailable()
        try:
            value = self.backend.get_password(self.service_name, account)
        except Exception as e:
            logger.warning(f"Keyring read failed: {e}")
            return VaultResult(VaultStatus.FAILED, error=e)
        return VaultResult(VaultStatus.SUCCEEDED, value=value)

    def set(self, account: str, secret: str) -> VaultResult:
        if not self.available:
            return self._unavailable()
        try:
            self.backend.set_password(self.service_name, account, secret)
        except Exception as e:
            logger.warning(f"Keyring write failed: {e}")
            return VaultResult(VaultStatus.FAILED, error=e)
        return VaultResult(VaultStatus.SUCCEEDED)

    def delete(self, account: str) -> VaultResult:
        """Remove an entry; an already absent entry counts as success"""
        if not self.available:
            return self._unavailable()
        try:
            self.backend.delete_password(self.service_name, account)
        except PasswordDeleteError:
            logger.debug("No keyring entry to delete")
        except Exception as e:
            logger.warning(f"Keyring delete failed: {e}")
            return VaultResult(VaultStatus.FAILED, error=e)
        return VaultResult(VaultStatus.SUCCEEDED)
