"""
Unit tests for the Stalker client and session manager.
"""
import json

import httpx

from iptv_engine.services.session import SessionManager, SessionState, profile_params
from iptv_engine.services.stalker import StalkerClient, js_timestamp, stalker_headers
from fixtures.factories import make_account, mock_client


class PortalStub:
    """Scripted Stalker portal; records every request it receives."""

    def __init__(self, token="TOKEN1", profile='{"js":{"id":1}}'):
        self.token = token
        self.profile = profile
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        action = request.url.params.get("action")
        if action == "handshake":
            if self.token is None:
                return httpx.Response(200, text="")
            return httpx.Response(200, text=json.dumps({"js": {"token": self.token}}))
        if action == "get_profile":
            return httpx.Response(200, text=self.profile)
        if action == "get_main_info":
            return httpx.Response(200, text='{"js":{"mac":"00:1A:79:00:00:01"}}')
        return httpx.Response(404)

    @property
    def actions(self):
        return [r.url.params.get("action") for r in self.requests]


def make_manager(stub):
    return SessionManager(StalkerClient(mock_client(stub)), lambda account: account.server_portal_url)


class TestStalkerClient:
    """Tests for raw portal requests."""

    def test_headers_carry_device_identity(self):
        headers = stalker_headers(make_account(), token="abc")
        assert "MAG200 stbapp" in headers["User-Agent"]
        assert headers["X-User-Agent"] == "Model: MAG250; Link: WiFi"
        assert headers["Referer"] == "http://portal.example.com/c/"
        assert headers["Cookie"] == "mac=00:1A:79:00:00:01; stb_lang=en; timezone=GMT;"
        assert headers["Authorization"] == "Bearer abc"

    def test_no_authorization_without_token(self):
        assert "Authorization" not in stalker_headers(make_account())

    def test_non_200_returns_blank_body(self):
        client = StalkerClient(mock_client(lambda request: httpx.Response(500, text="boom")))
        assert client.fetch(make_account(), {"action": "x"}) == ""

    def test_transport_error_returns_blank_body(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = StalkerClient(mock_client(handler))
        assert client.fetch(make_account(), {"action": "x"}) == ""

    def test_missing_portal_url_returns_blank_body(self):
        client = StalkerClient(mock_client(lambda request: httpx.Response(200, text="ok")))
        assert client.fetch(make_account(server_portal_url=None), {"action": "x"}) == ""

    def test_js_timestamp_format(self):
        value = js_timestamp()
        assert value.endswith("-xml")
        assert value[:-4].isdigit()


class TestProfileParams:
    def test_device_id2_defaults_to_device_id(self):
        params = profile_params(make_account(device_id_1="D1", device_id_2=None))
        assert params["device_id"] == "D1"
        assert params["device_id2"] == "D1"

    def test_metrics_and_fixed_values(self):
        params = profile_params(make_account(signature="SIG"))
        metrics = json.loads(params["metrics"])
        assert metrics["mac"] == "00:1A:79:00:00:01"
        assert metrics["model"] == "MAG250"
        assert params["signature"] == "SIG"
        assert params["stb_type"] == "MAG250"
        assert params["api_signature"] == "262"
        assert params["auth_second_step"] == "1"

    def test_random_signature_when_missing(self):
        params = profile_params(make_account(signature=None))
        assert len(params["signature"]) == 64


class TestSessionManager:
    """Tests for the handshake/token protocol."""

    def test_connect_runs_handshake_profile_and_main_info(self):
        stub = PortalStub()
        manager = make_manager(stub)
        account = make_account()

        assert manager.connect(account) is True
        assert stub.actions == ["handshake", "get_profile", "get_main_info"]
        assert manager.token(account) == "TOKEN1"
        assert manager.state(account) == SessionState.CONNECTED
        assert stub.requests[1].headers["Authorization"] == "Bearer TOKEN1"
        assert "Authorization" not in stub.requests[0].headers

    def test_handshake_params(self):
        stub = PortalStub()
        make_manager(stub).connect(make_account())
        params = stub.requests[0].url.params
        assert params["type"] == "stb"
        assert params["token"] == ""
        assert params["JsHttpRequest"].endswith("-xml")

    def test_connect_skips_main_info_when_profile_is_blank(self):
        stub = PortalStub(profile="")
        assert make_manager(stub).connect(make_account()) is True
        assert stub.actions == ["handshake", "get_profile"]

    def test_blank_handshake_leaves_account_disconnected(self):
        stub = PortalStub(token=None)
        manager = make_manager(stub)
        account = make_account()

        assert manager.connect(account) is False
        assert manager.is_connected(account) is False
        assert manager.state(account) == SessionState.FAILED
        assert stub.actions == ["handshake"]

    def test_hard_refresh_always_requests_profile(self):
        stub = PortalStub(token=None)
        assert make_manager(stub).hard_token_refresh(make_account()) is False
        assert stub.actions == ["handshake", "get_profile"]

    def test_ensure_connected_reuses_token(self):
        stub = PortalStub()
        manager = make_manager(stub)
        account = make_account()

        assert manager.ensure_connected(account) is True
        assert manager.ensure_connected(account) is True
        assert stub.actions.count("handshake") == 1

    def test_invalidate_forces_new_handshake(self):
        stub = PortalStub()
        manager = make_manager(stub)
        account = make_account()
        manager.connect(account)

        manager.invalidate(account.id)

        assert manager.is_connected(account) is False
        manager.ensure_connected(account)
        assert stub.actions.count("handshake") == 2

    def test_no_portal_url_means_no_handshake(self):
        stub = PortalStub()
        manager = SessionManager(StalkerClient(mock_client(stub)), lambda account: None)
        assert manager.connect(make_account(server_portal_url=None)) is False
        assert stub.requests == []

    def test_fetch_uses_current_token(self):
        stub = PortalStub()
        manager = make_manager(stub)
        account = make_account()
        manager.connect(account)

        manager.fetch(account, {"type": "itv", "action": "get_genres"})
        assert stub.requests[-1].headers["Authorization"] == "Bearer TOKEN1"
