"""Shared test fixtures and configuration."""

import json

import httpx
import pytest
import structlog

from src.nlobby.api import PortalClient
from src.nlobby.config import BridgeConfig

BASE_URL = "https://nlobby.test"

SESSION_COOKIE = (
    "__Secure-next-auth.session-token=tok123; "
    "__Host-next-auth.csrf-token=csrf456%7Chash; "
    "__Secure-next-auth.callback-url=https%3A%2F%2Fnlobby.test%2Fnews; "
    "_ga=GA1.1"
)


def push_script(*payloads: str) -> str:
    """Render streamed fragments the way app-router pages embed them."""
    scripts = "".join(
        f"<script>self.__next_f.push({json.dumps([1, payload])})</script>"
        for payload in payloads
    )
    return f"<html><head><title>N Lobby</title></head><body>{scripts}</body></html>"


@pytest.fixture
def push_page():
    return push_script


@pytest.fixture
def session_cookie() -> str:
    return SESSION_COOKIE


@pytest.fixture
def base_url() -> str:
    return BASE_URL


@pytest.fixture
def config() -> BridgeConfig:
    """Config pointed at a fake origin with no retry delays."""
    return BridgeConfig(
        _env_file=None,
        nlobby_base_url=BASE_URL,
        discovery_backoff=0,
        login_backoff=0,
    )


@pytest.fixture
def make_client(config):
    """Build a PortalClient whose HTTP calls go to a handler function."""

    def factory(handler, cookies: str | None = SESSION_COOKIE) -> PortalClient:
        client = PortalClient(config, transport=httpx.MockTransport(handler))
        if cookies:
            client.set_cookies(cookies)
        return client

    return factory


@pytest.fixture
def news_records() -> list[dict]:
    return [
        {
            "id": "101",
            "title": "夏季スクーリングのお知らせ",
            "description": "日程を確認してください",
            "menuName": "お知らせ",
            "publishedAt": "2025-07-13T09:00:00+09:00",
            "isImportant": True,
            "isUnread": True,
        },
        {
            "id": "102",
            "title": "Library hours",
            "menuName": "Campus",
            "publishedAt": "2025-07-10T12:00:00+09:00",
            "isImportant": False,
        },
    ]


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop any structlog configuration a test installed."""
    yield
    structlog.reset_defaults()
