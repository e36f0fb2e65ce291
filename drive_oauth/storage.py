import json
import logging
import os
import platform
import tempfile
from pathlib import Path
from typing import Optional, Union

from .constants import STORAGE_FILE, STORAGE_SECURE
from .errors import CredentialStoreCorrupted
from .keyring_vault import KeyringVault, VaultStatus
from .models import StoredCredential

logger = logging.getLogger(__name__)


class CredentialStore:
    """Layered credential storage: OS keyring first, protected JSON file always

    The file copy is written on every store so a later run without keyring
    access still finds the session. The keyring entry is keyed by the user's
    email, so it is only used once the email is known.
    """

    def __init__(self, config_dir: Union[str, Path], vault: KeyringVault, file_name: str = "tokens.json"):
        self.config_dir = Path(config_dir).expanduser()
        self.token_path = self.config_dir / file_name
        self.vault = vault
        self.last_storage_kind: Optional[str] = None

    def _ensure_secure_directory(self):
        """Create the config directory and keep it owner-only"""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        if platform.system() != "Windows":
            os.chmod(self.config_dir, 0o700)

    def _write_file(self, payload: str):
        """Atomically replace the token file (temp file + rename)"""
        self._ensure_secure_directory()
        fd, tmp_name = tempfile.mkstemp(dir=str(self.config_dir), prefix=".tokens-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            if platform.system() != "Windows":
                os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.token_path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _delete_vault_entry(self, email: str):
        result = self.vault.delete(email)
        if result.status is VaultStatus.FAILED:
            logger.warning(f"Could not remove keyring entry for {email}")

    def _read_file(self) -> Optional[StoredCredential]:
        if not self.token_path.exists():
            return None
        location = str(self.token_path)
        try:
            data = json.loads(self.token_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CredentialStoreCorrupted(location, str(e)) from e
        return StoredCredential.from_dict(data, location=location)

    def store(self, record: StoredCredential) -> str:
        """Persist the record, superseding any previous one

        Returns:
            "secure" when the keyring copy was written, otherwise "file"
        """
        try:
            previous = self._read_file()
        except CredentialStoreCorrupted:
            previous = None
        if previous is not None and previous.email and previous.email != record.email:
            self._delete_vault_entry(previous.email)

        payload = json.dumps(record.to_dict(), indent=2)
        self._write_file(payload)

        kind = STORAGE_FILE
        if record.email and self.vault.available:
            result = self.vault.set(record.email, payload)
            if result.succeeded:
                kind = STORAGE_SECURE
            else:
                logger.warning("Could not save credentials to the system keyring, kept file copy only")
                # A stale keyring copy would shadow the file on the next read
                self._delete_vault_entry(record.email)

        self.last_storage_kind = kind
        logger.info(f"Credentials stored ({kind})")
        return kind

    def retrieve(self, email_hint: Optional[str] = None) -> Optional[StoredCredential]:
        """Load the record, preferring the keyring when the email is known

        Raises:
            CredentialStoreCorrupted: if the file copy cannot be parsed
        """
        if email_hint:
            result = self.vault.get(email_hint)
            if result.succeeded and result.value:
                try:
                    record = StoredCredential.from_dict(json.loads(result.value), location="system keyring")
                except (json.JSONDecodeError, CredentialStoreCorrupted) as e:
                    logger.warning(f"Ignoring unreadable keyring entry: {e}")
                else:
                    self.last_storage_kind = STORAGE_SECURE
                    return record
            elif result.status is VaultStatus.FAILED:
                logger.warning("Keyring read failed, falling back to file storage")

        record = self._read_file()
        if record is not None:
            self.last_storage_kind = STORAGE_FILE
        return record

    def storage_kind(self, email_hint: Optional[str] = None) -> Optional[str]:
        """Report where the record currently lives without parsing it"""
        if email_hint:
            result = self.vault.get(email_hint)
            if result.succeeded and result.value:
                return STORAGE_SECURE
        if self.token_path.exists():
            return STORAGE_FILE
        return None

    def delete(self, email_hint: Optional[str] = None):
        """Remove the record from every store; absence is not an error"""
        email = email_hint
        if email is None:
            try:
                record = self._read_file()
            except CredentialStoreCorrupted:
                record = None
            email = record.email if record else None

        if email:
            self._delete_vault_entry(email)

        try:
            self.token_path.unlink()
        except FileNotFoundError:
            pass
        self.last_storage_kind = None
        logger.info("Stored credentials removed")
