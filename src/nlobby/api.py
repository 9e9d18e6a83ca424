"""PortalClient: the single entry point for portal data.

Owns the session and wires transport, procedure client, extraction engine and
normalizers together. Every public method returns canonical models; failures
surface as BridgeError subclasses.
"""

from typing import Any

import httpx

from src.nlobby.config import BridgeConfig, get_config
from src.nlobby.dates import default_range, parse_datetime, single_day_range
from src.nlobby.discovery import (
    GENERIC_LISTING_CANDIDATES,
    NEWS_LISTING_CANDIDATES,
    discover,
)
from src.nlobby.errors import (
    AuthenticationError,
    BridgeError,
    InputValidationError,
    UnexpectedResponseError,
)
from src.nlobby.extraction import ExtractionEngine
from src.nlobby.extraction.fragments import PUSH_MARKER
from src.nlobby.logging import get_logger
from src.nlobby.models import (
    CalendarType,
    DateRange,
    NewsDetail,
    NewsFeed,
    RequiredCourse,
    ScheduleItem,
)
from src.nlobby.normalizers import (
    normalize_courses,
    normalize_events,
    normalize_news,
    normalize_news_detail,
)
from src.nlobby.procedures import ProcedureClient
from src.nlobby.session import SessionStore
from src.nlobby.transport import PortalTransport

NEWS_PATH = "/news"
USER_PATH = "/api/user"

LOGIN_KEYWORDS = ("ログイン", "login")
DENIED_KEYWORDS = ("unauthorized", "access denied")

CALENDAR_PROCEDURES = {
    CalendarType.PERSONAL: "calendar.getGoogleCalendarEvents",
    CalendarType.SCHOOL: "calendar.getLobbyCalendarEvents",
}

# (path, description) tried in order when unwrapping a calendar response
CALENDAR_RESPONSE_PATHS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("result", "data", "gcal"), "result.data.gcal"),
    (("result", "data", "lcal"), "result.data.lcal"),
    (("result", "data"), "result.data"),
    (("data", "gcal"), "data.gcal"),
    (("data", "lcal"), "data.lcal"),
    (("data",), "data"),
    (("gcal",), "gcal"),
    (("lcal",), "lcal"),
    ((), "top level"),
)


def _dig(value: Any, path: tuple[str, ...]) -> Any:
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def unwrap_calendar_events(response: Any) -> tuple[list, str]:
    """Find the event list in a calendar procedure response.

    Returns:
        (events, description of where they were found).

    Raises:
        UnexpectedResponseError: With a preview of the response.
    """
    for path, where in CALENDAR_RESPONSE_PATHS:
        value = _dig(response, path)
        if isinstance(value, list):
            return value, where
    preview = repr(response)[:300]
    raise UnexpectedResponseError(
        f"No calendar events found in response. Preview: {preview}"
    )


def calendar_type(value: str | CalendarType) -> CalendarType:
    try:
        return CalendarType(value)
    except ValueError:
        raise InputValidationError(
            f"Invalid calendar type {value!r}; expected 'personal' or 'school'"
        ) from None


class PortalClient:
    """Authenticated access to news, calendar and course data.

    Args:
        config: Bridge configuration (defaults to the singleton).
        transport: Optional httpx transport, used by tests.
        logger: Optional structlog logger shared by the components.
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        logger=None,
    ) -> None:
        self.config = config or get_config()
        self.log = logger or get_logger(__name__)
        self.session = SessionStore(logger=logger)
        self.transport = PortalTransport(self.session, self.config, transport, logger=logger)
        self.procedures = ProcedureClient(
            self.transport, timeout=self.config.procedure_timeout, logger=logger
        )
        self.engine = ExtractionEngine(
            data_grid_index=self.config.data_grid_container_index, logger=logger
        )

    @property
    def base_url(self) -> str:
        return self.config.base_url

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> "PortalClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # Session

    def set_cookies(self, blob: str) -> bool:
        return self.session.set_cookies(blob)

    def cookie_status(self) -> str:
        return self.session.status_report()

    def logout(self) -> None:
        self.session.clear()

    # Pages

    async def fetch_rendered_html(self, path: str) -> str:
        """Fetch a server-rendered page.

        Raises:
            AuthenticationError: If the portal served an access-denied page.
        """
        html = await self.transport.get_text(path, timeout=self.config.page_timeout)
        lowered = html.lower()
        if any(word in lowered for word in LOGIN_KEYWORDS):
            self.log.warning("login_keywords_in_page", path=path)
        if PUSH_MARKER not in html and any(word in lowered for word in DENIED_KEYWORDS):
            raise AuthenticationError(f"Access denied while fetching {path}")
        self.log.info("page_fetched", path=path, length=len(html))
        return html

    # News

    async def get_news(self) -> NewsFeed:
        """Fetch the news listing.

        The rendered /news page is tried first; if no strategy recovers
        records, the listing procedures are discovered. An empty feed carries
        the page diagnostics.
        """
        html = await self.fetch_rendered_html(NEWS_PATH)
        extracted = self.engine.extract(html)
        if extracted.records:
            return NewsFeed(
                items=normalize_news(extracted.records, self.base_url),
                source=extracted.strategy,
            )

        self.log.info("news_discovery_fallback")
        for candidates in (NEWS_LISTING_CANDIDATES, GENERIC_LISTING_CANDIDATES):
            found = await discover(
                self.procedures,
                candidates,
                attempts=self.config.discovery_attempts,
                backoff=self.config.discovery_backoff,
                logger=self.log,
            )
            if found.records:
                records = [r for r in found.records if isinstance(r, dict)]
                return NewsFeed(
                    items=normalize_news(records, self.base_url),
                    source=f"procedure:{found.label}",
                )

        return NewsFeed(
            items=[],
            diagnostics=extracted.diagnostics.summary() if extracted.diagnostics else None,
        )

    async def get_news_detail(self, news_id: str) -> NewsDetail:
        """Fetch and parse one article page.

        Raises:
            UnexpectedResponseError: If no article record is on the page.
        """
        html = await self.fetch_rendered_html(f"{NEWS_PATH}/{news_id}")
        detail = self.engine.extract_detail(html, news_id)
        if not detail.found:
            summary = detail.diagnostics.summary() if detail.diagnostics else ""
            raise UnexpectedResponseError(
                f"Could not find news {news_id} in the article page.\n{summary}"
            )
        return normalize_news_detail(detail.record, detail.content, news_id, self.base_url)

    async def mark_news_as_read(self, news_id: str) -> Any:
        result = await self.procedures.upsert_browsing_history(
            news_id, referer=f"{self.base_url}{NEWS_PATH}/{news_id}"
        )
        self.log.info("news_marked_read", news_id=news_id)
        return result

    # Calendar

    async def get_calendar_events(
        self,
        kind: str | CalendarType = CalendarType.PERSONAL,
        date_range: DateRange | None = None,
    ) -> list[dict]:
        kind = calendar_type(kind)
        date_range = date_range or default_range()
        response = await self.procedures.call(
            CALENDAR_PROCEDURES[kind], date_range.as_procedure_input()
        )
        events, where = unwrap_calendar_events(response)
        self.log.info("calendar_events_fetched", calendar=kind.value, events=len(events), found_at=where)
        return events

    async def get_schedule(
        self,
        kind: str | CalendarType = CalendarType.PERSONAL,
        date_range: DateRange | None = None,
    ) -> list[ScheduleItem]:
        events = await self.get_calendar_events(kind, date_range)
        return normalize_events(events, self.config.all_day_end_exclusive)

    async def get_schedule_by_date(self, day: str | None = None) -> list[ScheduleItem]:
        """Personal schedule for one day, or the default week when day is None."""
        if day:
            if parse_datetime(day) is None:
                raise InputValidationError(f"Invalid date format: {day}")
            date_range = single_day_range(day)
        else:
            date_range = default_range()
        return await self.get_schedule(CalendarType.PERSONAL, date_range)

    async def test_calendar_endpoints(self, date_range: DateRange | None = None) -> dict:
        """Try both calendar procedures; report success, count and error for each."""
        date_range = date_range or default_range()
        results = {}
        for kind in CalendarType:
            try:
                events = await self.get_calendar_events(kind, date_range)
            except BridgeError as e:
                results[kind.value] = {"success": False, "count": 0, "error": e.describe()}
                continue
            results[kind.value] = {"success": True, "count": len(events)}
        return results

    # Courses and user

    async def get_required_courses(self) -> list[RequiredCourse]:
        response = await self.procedures.get_required_courses()
        return normalize_courses(response)

    async def get_user_info(self) -> Any:
        body = await self.transport.get_json(USER_PATH)
        if isinstance(body, dict) and "success" in body:
            if not body.get("success"):
                raise AuthenticationError(body.get("error") or "Failed to fetch user info")
            return body.get("data")
        return body
