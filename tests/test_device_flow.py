import httpx
import pytest

from conftest import DEVICE_URL, TOKEN_URL, form_data, mock_client, quiet_console

from drive_oauth.device_flow import DeviceFlow, DeviceFlowState
from drive_oauth.errors import DeviceCodeExpired, FlowDenied, FlowTimeout, OAuthProviderError

TOKENS = {"access_token": "access-1", "refresh_token": "refresh-1", "expires_in": 3599}


class ScriptedProvider:
    """Answers the device endpoint once, then token polls from a script"""

    def __init__(self, poll_script, device_response=None):
        self.poll_script = list(poll_script)
        self.device_response = device_response or {
            "device_code": "dev-code",
            "user_code": "ABCD-EFGH",
            "verification_url": "https://www.google.com/device",
            "expires_in": 1800,
            "interval": 5,
        }
        self.device_requests = []
        self.polls = []

    def __call__(self, request):
        if str(request.url) == DEVICE_URL:
            self.device_requests.append(form_data(request))
            return httpx.Response(200, json=self.device_response)
        assert str(request.url) == TOKEN_URL
        self.polls.append(form_data(request))
        answer = self.poll_script.pop(0)
        if "access_token" in answer:
            return httpx.Response(200, json=answer)
        return httpx.Response(428 if answer["error"] == "authorization_pending" else 400, json=answer)


class FakeTimer:
    """Records sleeps and moves a fake monotonic clock forward"""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def clock(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def make_flow(provider_config, provider, timer, **kwargs):
    return DeviceFlow(
        provider_config,
        http_client=mock_client(provider),
        console=quiet_console(),
        sleep=timer.sleep,
        clock=timer.clock,
        **kwargs,
    )


def pending():
    return {"error": "authorization_pending"}


def slow_down():
    return {"error": "slow_down"}


@pytest.mark.asyncio
async def test_polls_until_approved(provider_config):
    provider = ScriptedProvider([pending(), pending(), TOKENS])
    timer = FakeTimer()
    flow = make_flow(provider_config, provider, timer)

    tokens = await flow.run()

    assert tokens.access_token == "access-1"
    assert tokens.refresh_token == "refresh-1"
    assert timer.sleeps == [5, 5, 5]
    assert flow.state is DeviceFlowState.DONE
    assert provider.device_requests == [{
        "client_id": provider_config.client_id,
        "scope": " ".join(provider_config.scopes),
    }]
    assert provider.polls[0]["grant_type"] == "urn:ietf:params:oauth:grant-type:device_code"
    assert provider.polls[0]["device_code"] == "dev-code"


@pytest.mark.asyncio
async def test_user_code_and_url_are_displayed(provider_config):
    provider = ScriptedProvider([TOKENS])
    flow = make_flow(provider_config, provider, FakeTimer())

    await flow.run()

    output = flow.console.file.getvalue()
    assert "ABCD-EFGH" in output
    assert "https://www.google.com/device" in output


@pytest.mark.asyncio
async def test_slow_down_adds_one_second_for_all_later_polls(provider_config):
    provider = ScriptedProvider([slow_down(), slow_down(), pending(), TOKENS])
    timer = FakeTimer()

    await make_flow(provider_config, provider, timer).run()

    assert timer.sleeps == [5, 6, 7, 7]


@pytest.mark.asyncio
async def test_slow_down_respects_optional_cap(provider_config):
    provider = ScriptedProvider([slow_down(), slow_down(), slow_down(), TOKENS])
    timer = FakeTimer()

    await make_flow(provider_config, provider, timer, max_poll_interval=6).run()

    assert timer.sleeps == [5, 6, 6, 6]


@pytest.mark.asyncio
async def test_interval_defaults_to_five_seconds(provider_config):
    provider = ScriptedProvider([pending(), TOKENS], device_response={
        "device_code": "dev-code",
        "user_code": "ABCD-EFGH",
        "verification_uri": "https://www.google.com/device",
        "expires_in": 1800,
    })
    timer = FakeTimer()
    flow = make_flow(provider_config, provider, timer)

    await flow.run()

    assert timer.sleeps == [5, 5]
    assert flow.authorization.verification_url == "https://www.google.com/device"


@pytest.mark.asyncio
async def test_expires_when_lifetime_elapses(provider_config):
    provider = ScriptedProvider([pending()] * 10)
    provider.device_response["expires_in"] = 12
    timer = FakeTimer()
    flow = make_flow(provider_config, provider, timer)

    with pytest.raises(DeviceCodeExpired) as exc_info:
        await flow.run()

    assert isinstance(exc_info.value, FlowTimeout)
    assert "--device" in str(exc_info.value)
    assert len(provider.polls) == 2
    assert flow.state is DeviceFlowState.EXPIRED


@pytest.mark.asyncio
async def test_expired_token_error_is_terminal(provider_config):
    provider = ScriptedProvider([pending(), {"error": "expired_token"}])
    flow = make_flow(provider_config, provider, FakeTimer())

    with pytest.raises(DeviceCodeExpired):
        await flow.run()
    assert flow.state is DeviceFlowState.EXPIRED


@pytest.mark.asyncio
async def test_access_denied_raises_flow_denied(provider_config):
    provider = ScriptedProvider([{"error": "access_denied"}])
    flow = make_flow(provider_config, provider, FakeTimer())

    with pytest.raises(FlowDenied):
        await flow.run()
    assert flow.state is DeviceFlowState.FAILED


@pytest.mark.asyncio
async def test_unknown_error_fails_the_flow(provider_config):
    provider = ScriptedProvider([{"error": "invalid_client", "error_description": "The OAuth client was not found."}])
    flow = make_flow(provider_config, provider, FakeTimer())

    with pytest.raises(OAuthProviderError) as exc_info:
        await flow.run()

    assert exc_info.value.error == "invalid_client"
    assert exc_info.value.description == "The OAuth client was not found."
    assert flow.state is DeviceFlowState.FAILED


@pytest.mark.asyncio
async def test_device_endpoint_rejection(provider_config):
    def handler(request):
        return httpx.Response(400, json={"error": "invalid_scope"})

    flow = DeviceFlow(provider_config, http_client=mock_client(handler), console=quiet_console())
    with pytest.raises(OAuthProviderError) as exc_info:
        await flow.run()
    assert exc_info.value.error == "invalid_scope"
