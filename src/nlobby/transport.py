"""HTTP transport to the portal.

PortalTransport wraps an httpx.AsyncClient with a fixed browser-like header
profile and the current session cookie. It maps httpx failures onto the
NetworkError / TransportError taxonomy and turns a 401 on an authenticated
session into SessionExpiredError. Nothing else about responses is interpreted
here.
"""

import json
from typing import Any

import httpx

from src.nlobby.config import BridgeConfig, get_config
from src.nlobby.errors import (
    DIAGNOSE_HINT,
    REAUTH_HINT,
    NetworkError,
    SessionExpiredError,
    TransportError,
    UnexpectedResponseError,
)
from src.nlobby.logging import get_logger
from src.nlobby.session import SessionStore

COMMON_HEADERS = {
    "Accept-Language": "ja,en-US;q=0.7,en;q=0.3",
    "Accept-Encoding": "gzip, deflate, br",
    "Connection": "keep-alive",
}

HEADER_PROFILES = {
    # Top-level page navigation
    "document": {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        "Upgrade-Insecure-Requests": "1",
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "none",
        "Cache-Control": "no-cache",
    },
    # Same-origin fetch from the page's JavaScript
    "api": {
        "Accept": "application/json",
        "Content-Type": "application/json",
        "Sec-Fetch-Dest": "empty",
        "Sec-Fetch-Mode": "cors",
        "Sec-Fetch-Site": "same-origin",
    },
}

STATUS_HINTS = {
    403: "Access forbidden. Check your permissions or re-authenticate.",
    404: "Endpoint not found. The portal API may have changed.",
}

BODY_PREVIEW = 500


def _classify_network_error(exc: httpx.TransportError) -> str:
    if isinstance(exc, httpx.TimeoutException):
        return "timeout"
    if isinstance(exc, httpx.ConnectError):
        text = str(exc).lower()
        if "name" in text and ("resolution" in text or "resolve" in text or "not known" in text):
            return "dns"
        return "connection"
    if isinstance(exc, (httpx.ProtocolError, httpx.ProxyError, httpx.UnsupportedProtocol)):
        return "protocol"
    return "unknown"


class PortalTransport:
    """Executes HTTP calls against the portal with the current session cookie.

    Args:
        session: Session store read on every request.
        config: Bridge configuration (defaults to the singleton).
        transport: Optional httpx transport (httpx.MockTransport in tests).
        logger: Optional structlog logger.
    """

    def __init__(
        self,
        session: SessionStore,
        config: BridgeConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        logger=None,
    ) -> None:
        self.session = session
        self.config = config or get_config()
        self.log = logger or get_logger(__name__)
        self.base_url = self.config.base_url
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"User-Agent": self.config.effective_user_agent, **COMMON_HEADERS},
            timeout=self.config.page_timeout,
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> "PortalTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def build_headers(
        self, profile: str = "document", extra: dict[str, str] | None = None
    ) -> dict[str, str]:
        headers = dict(HEADER_PROFILES[profile])
        cookie = self.session.request_cookie()
        if cookie:
            headers["Cookie"] = cookie
        if extra:
            headers.update(extra)
        return headers

    async def send(
        self,
        method: str,
        path: str,
        *,
        profile: str = "document",
        timeout: float | None = None,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        content: str | bytes | None = None,
    ) -> httpx.Response:
        """Send a request and return the response regardless of status.

        Only network failures raise; diagnostics use this to inspect error
        responses.

        Raises:
            NetworkError: If no response was received.
        """
        try:
            response = await self._client.request(
                method,
                path,
                params=params,
                headers=self.build_headers(profile, headers),
                content=content,
                timeout=timeout if timeout is not None else self.config.page_timeout,
            )
        except httpx.TransportError as e:
            kind = _classify_network_error(e)
            self.log.warning(
                "request_failed", method=method, path=path, kind=kind, error=str(e)
            )
            raise NetworkError(
                f"{method} {path} failed ({kind}): {e or type(e).__name__}", kind=kind
            ) from e

        self.log.debug(
            "response_received",
            method=method,
            path=path,
            status=response.status_code,
            length=len(response.content),
        )
        return response

    async def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request and raise on any non-2xx status.

        Raises:
            SessionExpiredError: On 401 while a session is set.
            TransportError: On any other non-2xx status.
            NetworkError: If no response was received.
        """
        response = await self.send(method, path, **kwargs)
        if response.is_success:
            return response

        status = response.status_code
        body = response.text[:BODY_PREVIEW]
        if status == 401 and self.session.is_authenticated():
            self.log.error("session_expired", path=path)
            raise SessionExpiredError(
                "Authentication expired. Please re-authenticate with fresh cookies.",
                body=body,
            )
        self.log.warning("http_error", method=method, path=path, status=status)
        hint = STATUS_HINTS.get(status, REAUTH_HINT if status == 401 else DIAGNOSE_HINT)
        raise TransportError(
            f"{method} {path} returned HTTP {status}",
            status=status,
            body=body,
            hint=hint,
        )

    async def get_text(self, path: str, **kwargs) -> str:
        response = await self.request("GET", path, **kwargs)
        return response.text

    async def get_json(self, path: str, **kwargs) -> Any:
        kwargs.setdefault("profile", "api")
        response = await self.request("GET", path, **kwargs)
        return self._decode(response, path)

    async def post_json(self, path: str, body: Any, **kwargs) -> Any:
        kwargs.setdefault("profile", "api")
        response = await self.request("POST", path, content=json.dumps(body), **kwargs)
        return self._decode(response, path)

    def _decode(self, response: httpx.Response, path: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise UnexpectedResponseError(
                f"{path} did not return JSON: {response.text[:200]!r}"
            ) from e
