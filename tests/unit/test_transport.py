"""Tests for the HTTP transport's header profile and error mapping."""

import httpx
import pytest

from src.nlobby.errors import (
    NetworkError,
    SessionExpiredError,
    TransportError,
    UnexpectedResponseError,
)
from src.nlobby.session import SessionStore
from src.nlobby.transport import STATUS_HINTS, PortalTransport


def make_transport(config, handler, cookies: str | None = None) -> PortalTransport:
    session = SessionStore()
    if cookies:
        session.set_cookies(cookies)
    return PortalTransport(session, config, transport=httpx.MockTransport(handler))


class TestHeaders:
    """Tests for outgoing request headers."""

    @pytest.mark.asyncio
    async def test_document_profile_sends_cookie_and_user_agent(self, config, session_cookie):
        """Page fetches carry the browser profile and the full cookie blob."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.headers)
            return httpx.Response(200, text="<html></html>")

        async with make_transport(config, handler, session_cookie) as transport:
            await transport.get_text("/news")

        assert seen["cookie"] == session_cookie
        assert seen["sec-fetch-mode"] == "navigate"
        assert "Chrome/138" in seen["user-agent"]

    @pytest.mark.asyncio
    async def test_api_profile_is_default_for_json(self, config):
        """JSON calls use the same-origin fetch profile."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.headers)
            return httpx.Response(200, json={"ok": True})

        async with make_transport(config, handler) as transport:
            body = await transport.get_json("/api/user")

        assert body == {"ok": True}
        assert seen["accept"] == "application/json"
        assert seen["sec-fetch-mode"] == "cors"
        assert "cookie" not in seen


class TestErrorMapping:
    """Tests for status and network failure classification."""

    @pytest.mark.asyncio
    async def test_401_with_session_is_session_expired(self, config, session_cookie):
        """An authenticated 401 surfaces as SessionExpiredError."""
        handler = lambda request: httpx.Response(401, text="nope")  # noqa: E731

        async with make_transport(config, handler, session_cookie) as transport:
            with pytest.raises(SessionExpiredError) as excinfo:
                await transport.get_text("/news")

        assert excinfo.value.status == 401
        assert not excinfo.value.retryable

    @pytest.mark.asyncio
    async def test_401_without_session_is_plain_transport_error(self, config):
        """Without a session a 401 is not an expiry."""
        handler = lambda request: httpx.Response(401)  # noqa: E731

        async with make_transport(config, handler) as transport:
            with pytest.raises(TransportError) as excinfo:
                await transport.get_text("/news")

        assert not isinstance(excinfo.value, SessionExpiredError)
        assert excinfo.value.status == 401

    @pytest.mark.parametrize("status", [403, 404])
    @pytest.mark.asyncio
    async def test_status_specific_hints(self, config, status):
        """403 and 404 carry their own remediation hints."""
        handler = lambda request: httpx.Response(status)  # noqa: E731

        async with make_transport(config, handler) as transport:
            with pytest.raises(TransportError) as excinfo:
                await transport.get_text("/news")

        assert excinfo.value.hint == STATUS_HINTS[status]
        assert STATUS_HINTS[status] in excinfo.value.describe()

    @pytest.mark.asyncio
    async def test_5xx_is_retryable(self, config):
        """Server errors are marked retryable and keep a body preview."""
        handler = lambda request: httpx.Response(503, text="maintenance")  # noqa: E731

        async with make_transport(config, handler) as transport:
            with pytest.raises(TransportError) as excinfo:
                await transport.get_text("/news")

        assert excinfo.value.retryable
        assert excinfo.value.body == "maintenance"

    @pytest.mark.parametrize("exc_type,kind", [
        (httpx.ConnectTimeout, "timeout"),
        (httpx.ReadTimeout, "timeout"),
        (httpx.ConnectError, "connection"),
        (httpx.RemoteProtocolError, "protocol"),
    ])
    @pytest.mark.asyncio
    async def test_network_failures_are_classified(self, config, exc_type, kind):
        """No response means NetworkError with a failure kind."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise exc_type("boom", request=request)

        async with make_transport(config, handler) as transport:
            with pytest.raises(NetworkError) as excinfo:
                await transport.get_text("/news")

        assert excinfo.value.kind == kind

    @pytest.mark.asyncio
    async def test_send_returns_error_responses(self, config):
        """send() never raises on status; diagnostics read error pages."""
        handler = lambda request: httpx.Response(500, text="oops")  # noqa: E731

        async with make_transport(config, handler) as transport:
            response = await transport.send("GET", "/")

        assert response.status_code == 500

    @pytest.mark.asyncio
    async def test_non_json_body_is_unexpected_response(self, config):
        """A 200 with HTML where JSON was expected is reported."""
        handler = lambda request: httpx.Response(200, text="<html>login</html>")  # noqa: E731

        async with make_transport(config, handler) as transport:
            with pytest.raises(UnexpectedResponseError):
                await transport.get_json("/api/user")
