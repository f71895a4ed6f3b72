"""Test the request gateway"""

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import aiohttp
import pytest

from spot_sync.core.config import GatewayConfig
from spot_sync.core.exceptions import (
    NetworkError,
    RateLimitedError,
    RemoteRejectedError,
    RemoteUnavailableError,
    UnauthorizedError,
)
from spot_sync.spotify.gateway import RequestGateway, Session

from tests.conftest import API


class FakeResponse:
    """Async context manager mimicking an aiohttp response"""

    def __init__(self, status, reason, text):
        self.status = status
        self.reason = reason
        self._text = text

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return False


class TestSession:
    """Test Session expiry"""

    def test_create(self):
        """Test a new session expires after its lifetime"""
        session = Session.create("token", 60)

        assert not session.expired
        assert 55 < session.seconds_left <= 60

    def test_expired(self):
        """Test a session past its expiry counts as expired"""
        session = Session("token", datetime.now(timezone.utc) - timedelta(seconds=1))

        assert session.expired


class TestRequestGateway:
    """Test admission, retries and session handling"""

    @pytest.mark.asyncio
    async def test_success(self, gateway, fake_spotify):
        """Test a 200 response returns the decoded payload"""
        profile = await gateway.call("GET", "me")

        assert profile['id'] == 'user1'
        assert fake_spotify.calls[0].path == "me"

    @pytest.mark.asyncio
    async def test_rate_limit_retry(self, gateway, fake_spotify, config):
        """Test 429 then 200 succeeds after waiting the base backoff once"""
        fake_spotify.add("GET", "search", (429, "Too Many Requests", None), {'ok': True})
        loop = asyncio.get_running_loop()
        start = loop.time()

        result = await gateway.call("GET", "search")

        assert result == {'ok': True}
        assert len(fake_spotify.calls_to("GET", "search")) == 2
        assert loop.time() - start >= config.gateway.rate_limit_backoff

    @pytest.mark.asyncio
    async def test_rate_limit_backoff_doubles(self, gateway, fake_spotify, config):
        """Test consecutive 429s wait base, then twice the base"""
        fake_spotify.add(
            "GET", "search",
            (429, "Too Many Requests", None),
            (429, "Too Many Requests", None),
            {'ok': True}
        )
        loop = asyncio.get_running_loop()
        start = loop.time()

        await gateway.call("GET", "search")

        assert loop.time() - start >= config.gateway.rate_limit_backoff * 3

    @pytest.mark.asyncio
    async def test_server_error_retry(self, gateway, fake_spotify, config):
        """Test 503 then 200 succeeds after waiting the fixed delay once"""
        fake_spotify.add("GET", "search", (503, "Service Unavailable", None), {'ok': True})
        loop = asyncio.get_running_loop()
        start = loop.time()

        result = await gateway.call("GET", "search")

        assert result == {'ok': True}
        assert loop.time() - start >= config.gateway.server_error_delay
        assert gateway.is_authenticated

    @pytest.mark.asyncio
    async def test_retry_ceiling(self, config, fake_spotify):
        """Test a configured ceiling turns persistent 429/5xx into errors"""
        capped = replace(config, gateway=GatewayConfig(rate_limit_backoff=0, server_error_delay=0, max_retries=1))
        gateway = RequestGateway(capped)
        gateway._send = fake_spotify.send
        gateway.open_session("token", 3600)
        fake_spotify.add("GET", "limited", (429, "Too Many Requests", None))
        fake_spotify.add("GET", "down", (502, "Bad Gateway", None))

        with pytest.raises(RateLimitedError) as limited:
            await gateway.call("GET", "limited")
        with pytest.raises(RemoteUnavailableError) as down:
            await gateway.call("GET", "down")

        assert limited.value.status == 429
        assert down.value.status == 502
        assert len(fake_spotify.calls_to("GET", "limited")) == 2
        # Transient failures never end the session
        assert gateway.is_authenticated

    @pytest.mark.asyncio
    async def test_rejection_invalidates_session(self, gateway, fake_spotify):
        """Test a non-retryable error logs out and carries the status text"""
        listener = Mock()
        gateway.on_session_invalidated(listener)
        fake_spotify.add("GET", "me/albums/contains", (403, "Forbidden", {'error': 'nope'}))

        with pytest.raises(RemoteRejectedError) as exc_info:
            await gateway.call("GET", "me/albums/contains")

        assert str(exc_info.value) == "Forbidden"
        assert exc_info.value.status == 403
        assert not gateway.is_authenticated
        listener.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_unauthorized_without_session(self, config, fake_spotify):
        """Test calls fail immediately when logged out"""
        gateway = RequestGateway(config)
        gateway._send = fake_spotify.send

        with pytest.raises(UnauthorizedError):
            await gateway.call("GET", "me")
        assert fake_spotify.calls == []

    @pytest.mark.asyncio
    async def test_expired_session_is_unauthorized(self, config, fake_spotify):
        """Test an expired session is treated as no session"""
        gateway = RequestGateway(config)
        gateway._send = fake_spotify.send
        gateway.open_session("token", -1)

        assert gateway.session is None
        with pytest.raises(UnauthorizedError):
            await gateway.call("GET", "me")

    @pytest.mark.asyncio
    async def test_fifo_admission(self, gateway):
        """Test concurrent calls are sent one at a time in call order"""
        sent = []
        in_flight = 0

        async def slow_send(method, url, token, body, params):
            nonlocal in_flight
            in_flight += 1
            assert in_flight == 1
            sent.append(url)
            # Earlier calls take longer, so only serialization keeps the order
            await asyncio.sleep(0.01 * (5 - len(sent)))
            in_flight -= 1
            return 200, "OK", url

        gateway._send = slow_send
        results = await asyncio.gather(*(gateway.call("GET", f"r{i}") for i in range(5)))

        assert sent == [f"{API}/r{i}" for i in range(5)]
        assert results == sent

    @pytest.mark.asyncio
    async def test_queued_calls_fail_after_logout(self, gateway):
        """Test logging out lets the running call finish and fails the queued ones"""
        async def slow_send(method, url, token, body, params):
            await asyncio.sleep(0.01)
            return 200, "OK", url

        gateway._send = slow_send
        first = asyncio.ensure_future(gateway.call("GET", "first"))
        second = asyncio.ensure_future(gateway.call("GET", "second"))
        await asyncio.sleep(0)
        gateway.close_session()

        assert await first == f"{API}/first"
        with pytest.raises(UnauthorizedError):
            await second

    def test_restore_session(self, config):
        """Test only live sessions are restored"""
        gateway = RequestGateway(config)
        expired = Session("old", datetime.now(timezone.utc) - timedelta(minutes=1))
        live = Session("new", datetime.now(timezone.utc) + timedelta(minutes=10))

        assert gateway.restore_session(expired) is False
        assert not gateway.is_authenticated
        assert gateway.restore_session(live) is True
        assert gateway.session == live

    def test_close_session_does_not_notify(self, gateway):
        """Test a manual logout is not reported as an invalidation"""
        listener = Mock()
        gateway.on_session_invalidated(listener)

        gateway.close_session()

        assert not gateway.is_authenticated
        listener.assert_not_called()

    def test_resolve(self, gateway):
        """Test relative paths join the base URL and absolute URLs pass through"""
        assert gateway._resolve("me/playlists") == f"{API}/me/playlists"
        assert gateway._resolve("/me") == f"{API}/me"
        assert gateway._resolve("https://other.test/next?offset=50") == "https://other.test/next?offset=50"


class TestSend:
    """Test the HTTP layer of the gateway"""

    def make_gateway(self, config, http):
        http.closed = False
        gateway = RequestGateway(config, http=http)
        gateway.open_session("secret", 3600)
        return gateway

    @pytest.mark.asyncio
    async def test_request_headers_and_body(self, config):
        """Test bearer token and JSON body are sent"""
        http = Mock()
        http.request.return_value = FakeResponse(201, "Created", '{"id": "pl1"}')
        gateway = self.make_gateway(config, http)

        result = await gateway.call("POST", "users/u/playlists", body={'name': 'Road Trip'})

        assert result == {'id': 'pl1'}
        args, kwargs = http.request.call_args
        assert args == ("POST", f"{API}/users/u/playlists")
        assert kwargs['headers']['Authorization'] == "Bearer secret"
        assert kwargs['data'] == '{"name": "Road Trip"}'

    @pytest.mark.asyncio
    async def test_empty_body(self, config):
        """Test an empty response body decodes to None"""
        http = Mock()
        http.request.return_value = FakeResponse(200, "OK", "")
        gateway = self.make_gateway(config, http)

        assert await gateway.call("PUT", "me/albums", body=["a1"]) is None

    @pytest.mark.asyncio
    async def test_network_error(self, config):
        """Test transport failures raise NetworkError and keep the session"""
        http = Mock()
        http.request.side_effect = aiohttp.ClientConnectionError("connection refused")
        gateway = self.make_gateway(config, http)

        with pytest.raises(NetworkError):
            await gateway.call("GET", "me")
        assert gateway.is_authenticated
