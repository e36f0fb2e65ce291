import asyncio

import httpx
import pytest

from conftest import TOKEN_URL, form_data, mock_client

from drive_oauth.errors import NetworkError, NotAuthenticated, OAuthProviderError, ReauthRequired, RefreshRejected
from drive_oauth.models import StoredCredential, TokenBundle
from drive_oauth.token_manager import TokenLifecycleManager


def no_network(request):
    raise AssertionError(f"unexpected request to {request.url}")


def seed(store, clock, expires_in=3600, refresh_token="refresh-old", id_token="id-old"):
    record = StoredCredential(
        tokens=TokenBundle(
            access_token="access-old",
            refresh_token=refresh_token,
            scope="drive.readonly",
            expires_at=clock() + expires_in,
            id_token=id_token,
        ),
        email="ada@example.com",
        scopes=["drive.readonly"],
        created_at=clock() - 100,
    )
    store.store(record)
    return record


def refresh_handler(calls, payload=None, status=200):
    def handler(request):
        calls.append(form_data(request))
        body = payload if payload is not None else {"access_token": "access-new", "expires_in": 3600}
        return httpx.Response(status, json=body)
    return handler


@pytest.mark.asyncio
async def test_no_record_raises_not_authenticated(provider_config, store, clock):
    manager = TokenLifecycleManager(provider_config, store, mock_client(no_network), clock=clock)
    with pytest.raises(NotAuthenticated):
        await manager.get_valid_access_token()


@pytest.mark.asyncio
async def test_fresh_token_is_returned_without_network(provider_config, store, clock):
    seed(store, clock, expires_in=301)
    manager = TokenLifecycleManager(provider_config, store, mock_client(no_network), clock=clock)

    assert await manager.get_valid_access_token() == "access-old"


@pytest.mark.asyncio
async def test_token_inside_margin_is_refreshed_keeping_refresh_token(provider_config, store, clock):
    seed(store, clock, expires_in=299)
    calls = []
    manager = TokenLifecycleManager(provider_config, store, mock_client(refresh_handler(calls)), clock=clock)

    assert await manager.get_valid_access_token() == "access-new"

    assert calls == [{
        "grant_type": "refresh_token",
        "refresh_token": "refresh-old",
        "client_id": provider_config.client_id,
        "client_secret": provider_config.client_secret,
    }]
    stored = store.retrieve()
    assert stored.tokens.access_token == "access-new"
    assert stored.tokens.refresh_token == "refresh-old"
    assert stored.tokens.id_token == "id-old"
    assert stored.tokens.scope == "drive.readonly"
    assert stored.tokens.expires_at == clock() + 3600
    assert stored.last_refreshed_at == clock()
    assert stored.email == "ada@example.com"


@pytest.mark.asyncio
async def test_rotated_refresh_token_replaces_old_one(provider_config, store, clock):
    seed(store, clock, expires_in=-10)
    calls = []
    payload = {"access_token": "access-new", "refresh_token": "refresh-new", "expires_in": 3600}
    manager = TokenLifecycleManager(provider_config, store, mock_client(refresh_handler(calls, payload)), clock=clock)

    await manager.get_valid_access_token()
    assert store.retrieve().tokens.refresh_token == "refresh-new"


@pytest.mark.asyncio
async def test_client_secret_only_sent_when_configured(provider_config, store, clock):
    provider_config.client_secret = ""
    seed(store, clock, expires_in=0)
    calls = []
    manager = TokenLifecycleManager(provider_config, store, mock_client(refresh_handler(calls)), clock=clock)

    await manager.get_valid_access_token()
    assert "client_secret" not in calls[0]


@pytest.mark.asyncio
async def test_missing_expiry_counts_as_expired(provider_config, store, clock):
    record = seed(store, clock)
    record.tokens.expires_at = None
    store.store(record)
    calls = []
    manager = TokenLifecycleManager(provider_config, store, mock_client(refresh_handler(calls)), clock=clock)

    assert await manager.get_valid_access_token() == "access-new"
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_stale_token_without_refresh_token_requires_reauth(provider_config, store, clock):
    seed(store, clock, expires_in=10, refresh_token=None)
    manager = TokenLifecycleManager(provider_config, store, mock_client(no_network), clock=clock)

    with pytest.raises(ReauthRequired):
        await manager.get_valid_access_token()


@pytest.mark.asyncio
async def test_invalid_grant_raises_refresh_rejected_and_keeps_record(provider_config, store, clock):
    seed(store, clock, expires_in=10)
    before = store.token_path.read_text()
    calls = []
    handler = refresh_handler(calls, {"error": "invalid_grant", "error_description": "Token has been expired or revoked."}, 400)
    manager = TokenLifecycleManager(provider_config, store, mock_client(handler), clock=clock)

    with pytest.raises(RefreshRejected) as exc_info:
        await manager.get_valid_access_token()

    assert "lighthouse-auth init" in str(exc_info.value)
    assert store.token_path.read_text() == before


@pytest.mark.asyncio
async def test_other_provider_errors_surface(provider_config, store, clock):
    seed(store, clock, expires_in=10)
    handler = refresh_handler([], {"error": "invalid_client"}, 401)
    manager = TokenLifecycleManager(provider_config, store, mock_client(handler), clock=clock)

    with pytest.raises(OAuthProviderError) as exc_info:
        await manager.get_valid_access_token()
    assert exc_info.value.error == "invalid_client"
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_non_numeric_expiry_is_an_invalid_response(provider_config, store, clock):
    seed(store, clock, expires_in=10)
    before = store.token_path.read_text()
    handler = refresh_handler([], {"access_token": "access-new", "expires_in": "soon"})
    manager = TokenLifecycleManager(provider_config, store, mock_client(handler), clock=clock)

    with pytest.raises(OAuthProviderError) as exc_info:
        await manager.get_valid_access_token()
    assert exc_info.value.error == "invalid_response"
    assert store.token_path.read_text() == before


@pytest.mark.asyncio
async def test_rotation_survives_keyring_write_failure(provider_config, store, keyring_backend, clock):
    seed(store, clock, expires_in=10)
    keyring_backend.fail_writes = True
    payload = {"access_token": "access-new", "refresh_token": "refresh-new", "expires_in": 3600}
    manager = TokenLifecycleManager(provider_config, store, mock_client(refresh_handler([], payload)), clock=clock)

    assert await manager.get_valid_access_token() == "access-new"
    assert store.retrieve("ada@example.com").tokens.refresh_token == "refresh-new"


@pytest.mark.asyncio
async def test_transport_failure_raises_network_error(provider_config, store, clock):
    seed(store, clock, expires_in=10)

    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    manager = TokenLifecycleManager(provider_config, store, mock_client(handler), clock=clock)
    with pytest.raises(NetworkError):
        await manager.get_valid_access_token()


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh(provider_config, store, clock):
    seed(store, clock, expires_in=10)
    release = asyncio.Event()
    calls = []

    async def handler(request):
        calls.append(str(request.url))
        await release.wait()
        return httpx.Response(200, json={"access_token": "access-new", "expires_in": 3600})

    manager = TokenLifecycleManager(provider_config, store, mock_client(handler), clock=clock)
    tasks = [asyncio.ensure_future(manager.get_valid_access_token()) for _ in range(5)]
    await asyncio.sleep(0.01)
    release.set()

    assert await asyncio.gather(*tasks) == ["access-new"] * 5
    assert calls == [TOKEN_URL]


@pytest.mark.asyncio
async def test_failed_refresh_is_reported_to_every_waiter(provider_config, store, clock):
    seed(store, clock, expires_in=10)
    release = asyncio.Event()
    calls = []

    async def handler(request):
        calls.append(1)
        await release.wait()
        return httpx.Response(400, json={"error": "invalid_grant"})

    manager = TokenLifecycleManager(provider_config, store, mock_client(handler), clock=clock)
    tasks = [asyncio.ensure_future(manager.get_valid_access_token()) for _ in range(3)]
    await asyncio.sleep(0.01)
    release.set()

    results = await asyncio.gather(*tasks, return_exceptions=True)
    assert all(isinstance(r, RefreshRejected) for r in results)
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_forced_refresh_ignores_expiry(provider_config, store, clock):
    seed(store, clock, expires_in=3600)
    calls = []
    manager = TokenLifecycleManager(provider_config, store, mock_client(refresh_handler(calls)), clock=clock)

    record = await manager.refresh()
    assert record.tokens.access_token == "access-new"
    assert len(calls) == 1


def test_token_expiry_report(provider_config, store, clock):
    manager = TokenLifecycleManager(provider_config, store, clock=clock)
    assert manager.get_token_expiry() is None

    seed(store, clock, expires_in=150)
    expiry = manager.get_token_expiry()
    assert expiry.is_expired is False
    assert expiry.minutes_until_expiry == 2

    # No safety margin for display purposes
    clock.advance(150)
    expiry = manager.get_token_expiry()
    assert expiry.is_expired is True
    assert expiry.minutes_until_expiry is None


def test_sync_facade_outside_event_loop(provider_config, store, clock):
    seed(store, clock)
    manager = TokenLifecycleManager(provider_config, store, clock=clock)
    assert manager.get_valid_access_token_sync() == "access-old"


@pytest.mark.asyncio
async def test_sync_facade_refuses_running_loop(provider_config, store, clock):
    seed(store, clock)
    manager = TokenLifecycleManager(provider_config, store, clock=clock)
    with pytest.raises(RuntimeError):
        manager.get_valid_access_token_sync()
