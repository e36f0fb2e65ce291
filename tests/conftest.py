import base64
import io
import json

import httpx
import pytest
from keyring.errors import PasswordDeleteError
from rich.console import Console

from drive_oauth.keyring_vault import KeyringVault
from drive_oauth.models import ProviderConfig
from drive_oauth.storage import CredentialStore

TOKEN_URL = "https://oauth.test/token"
DEVICE_URL = "https://oauth.test/device/code"
REVOKE_URL = "https://oauth.test/revoke"
AUTHORIZE_URL = "https://accounts.test/o/oauth2/v2/auth"


class FakeKeyringBackend:
    """Dict-backed stand-in for a keyring backend"""

    def __init__(self):
        self.entries = {}
        self.fail_reads = False
        self.fail_writes = False
        self.fail_deletes = False

    def get_password(self, service, username):
        if self.fail_reads:
            raise RuntimeError("keyring locked")
        return self.entries.get((service, username))

    def set_password(self, service, username, password):
        if self.fail_writes:
            raise RuntimeError("keyring locked")
        self.entries[(service, username)] = password

    def delete_password(self, service, username):
        if self.fail_deletes:
            raise RuntimeError("keyring locked")
        if (service, username) not in self.entries:
            raise PasswordDeleteError("not found")
        del self.entries[(service, username)]


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_id_token(claims: dict) -> str:
    def segment(data: dict) -> str:
        raw = json.dumps(data).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    return f"{segment({'alg': 'RS256', 'typ': 'JWT'})}.{segment(claims)}.signature"


def form_data(request: httpx.Request) -> dict:
    """Decode a form-encoded request body into a flat dict"""
    return dict(httpx.QueryParams(request.content.decode("utf-8")))


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def quiet_console() -> Console:
    return Console(file=io.StringIO(), width=200)


@pytest.fixture
def provider_config():
    return ProviderConfig(
        client_id="client-123.apps.googleusercontent.com",
        client_secret="secret-456",
        authorization_endpoint=AUTHORIZE_URL,
        token_endpoint=TOKEN_URL,
        device_authorization_endpoint=DEVICE_URL,
        revoke_endpoint=REVOKE_URL,
        scopes=[
            "https://www.googleapis.com/auth/drive.readonly",
            "https://www.googleapis.com/auth/userinfo.email",
        ],
    )


@pytest.fixture
def keyring_backend():
    return FakeKeyringBackend()


@pytest.fixture
def vault(keyring_backend):
    return KeyringVault("lighthouse-test", backend=keyring_backend)


@pytest.fixture
def store(tmp_path, vault):
    return CredentialStore(tmp_path / "config", vault)


@pytest.fixture
def file_only_store(tmp_path):
    return CredentialStore(tmp_path / "config", KeyringVault("lighthouse-test", enabled=False))


@pytest.fixture
def clock():
    return FakeClock()
