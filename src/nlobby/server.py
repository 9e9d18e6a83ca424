"""MCP server exposing the N Lobby portal as tools and resources.

Runs over stdio: stdout carries the protocol, so every log line goes to
stderr. Tools return text; data tools return indented JSON. Failures are
returned as "Error: <message>\\nHint: <remediation>" rather than raised.
"""

import functools
import json
from typing import Any

from mcp.server.fastmcp import FastMCP
from pydantic import BaseModel

from src.nlobby.api import PortalClient
from src.nlobby.browser_auth import BrowserLogin
from src.nlobby.config import get_config
from src.nlobby.dates import create_date_range, period_range, single_day_range
from src.nlobby.discovery import (
    GENERIC_LISTING_CANDIDATES,
    NEWS_LISTING_CANDIDATES,
    discover,
)
from src.nlobby.errors import (
    DIAGNOSE_HINT,
    REAUTH_HINT,
    BridgeError,
    InputValidationError,
)
from src.nlobby.health import HealthChecker, auth_recommendations
from src.nlobby.logging import get_logger
from src.nlobby.models import NewsItem, RequiredCourse
from src.nlobby.normalizers import summarize_courses

log = get_logger(__name__)

NEWS_SORTS = ("newest", "oldest", "title-asc", "title-desc")

mcp = FastMCP(
    name=get_config().mcp_server_name,
    instructions=(
        "N Lobby school portal bridge. Authenticate with interactive_login or "
        "set_cookies, then read news, schedules and required courses."
    ),
)
# FastMCP takes no version argument; the low-level server reports this one
# in its initialization response.
mcp._mcp_server.version = get_config().mcp_server_version

_client: PortalClient | None = None


def _get_client() -> PortalClient:
    global _client
    if _client is None:
        _client = PortalClient(get_config())
    return _client


def set_client(client: PortalClient | None) -> None:
    """Replace the shared portal client (used by tests)."""
    global _client
    _client = client


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    return value


def _to_json(value: Any) -> str:
    return json.dumps(_jsonable(value), ensure_ascii=False, indent=2, default=str)


def _handle_errors(action: str):
    """Decorator that turns failures into caller-facing error text with a hint."""

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            try:
                return await fn(*args, **kwargs)
            except BridgeError as e:
                log.warning("tool_failed", tool=action, error_type=type(e).__name__, error=str(e))
                return f"Error: {e.describe()}"
            except Exception as e:
                log.exception("tool_crashed", tool=action)
                return f"Error: {e}\nHint: {DIAGNOSE_HINT}"

        return wrapper

    return decorator


# News


def filter_news(
    items: list[NewsItem],
    category: str | None = None,
    limit: int = 10,
    sort: str = "newest",
) -> list[NewsItem]:
    """Apply the get_news category filter, sort order and limit.

    Unknown sort values fall back to newest first. limit <= 0 keeps everything.
    """
    if category:
        items = [item for item in items if item.category == category]
    if sort == "oldest":
        items = sorted(items, key=lambda item: item.published_at.timestamp())
    elif sort == "title-asc":
        items = sorted(items, key=lambda item: item.title)
    elif sort == "title-desc":
        items = sorted(items, key=lambda item: item.title, reverse=True)
    else:
        items = sorted(items, key=lambda item: item.published_at.timestamp(), reverse=True)
    if limit > 0:
        items = items[:limit]
    return items


@mcp.tool()
@_handle_errors("get_news")
async def get_news(category: str | None = None, limit: int = 10, sort: str = "newest") -> str:
    """
    Get school news from N Lobby.

    Args:
        category: Only return news of this category.
        limit: Maximum number of items (default 10, 0 for all).
        sort: newest, oldest, title-asc or title-desc.

    Returns:
        JSON array of news items
    """
    feed = await _get_client().get_news()
    if not feed.items and feed.diagnostics:
        return f"No news found.\n\n{feed.diagnostics}\nHint: {DIAGNOSE_HINT}"
    return _to_json(filter_news(feed.items, category, limit, sort))


@mcp.tool()
@_handle_errors("get_news_detail")
async def get_news_detail(news_id: str, mark_as_read: bool = False) -> str:
    """
    Get one news article with its full content.

    Args:
        news_id: Article id.
        mark_as_read: Also mark the article as read.

    Returns:
        JSON news detail
    """
    client = _get_client()
    detail = await client.get_news_detail(news_id)
    text = _to_json(detail)
    if mark_as_read:
        try:
            await client.mark_news_as_read(news_id)
        except BridgeError as e:
            log.error("mark_as_read_failed", news_id=news_id, error=str(e))
            text += f"\n\nNote: failed to mark {news_id} as read: {e.describe()}"
    return text


@mcp.tool()
@_handle_errors("mark_news_as_read")
async def mark_news_as_read(ids: list[str]) -> str:
    """
    Mark news articles as read.

    Args:
        ids: Article ids; processed one by one.

    Returns:
        Which ids succeeded and which failed
    """
    if not ids:
        raise InputValidationError("No news article ids provided; pass at least one id in 'ids'.")
    client = _get_client()
    marked, failed = [], []
    for news_id in ids:
        try:
            await client.mark_news_as_read(news_id)
        except BridgeError as e:
            failed.append((news_id, e))
            continue
        marked.append(news_id)

    lines = []
    if marked:
        lines.append(f"Marked {len(marked)} news article(s) as read: {', '.join(marked)}")
    if failed:
        lines.append(f"Failed to mark {len(failed)} news article(s) as read:")
        lines.extend(f"- {news_id}: {e}" for news_id, e in failed)
        lines.append(f"Hint: {failed[0][1].hint}")
    return "\n".join(lines)


# Courses


def filter_courses(
    courses: list[RequiredCourse],
    grade: int | None = None,
    semester: str | None = None,
    category: str | None = None,
) -> list[RequiredCourse]:
    if grade is not None:
        courses = [c for c in courses if c.grade == f"{grade}年次"]
    if semester:
        courses = [c for c in courses if c.term_year is not None and semester in str(c.term_year)]
    if category:
        needle = category.lower()
        courses = [c for c in courses if needle in c.curriculum_name.lower()]
    return courses


@mcp.tool()
@_handle_errors("get_required_courses")
async def get_required_courses(
    grade: int | None = None,
    semester: str | None = None,
    category: str | None = None,
) -> str:
    """
    Get required courses (履修) with progress and a summary.

    Args:
        grade: School year, e.g. 1 for 1年次.
        semester: Matched against the term year, e.g. "2024".
        category: Substring of the curriculum name, e.g. "数学".

    Returns:
        JSON summary with the filtered courses
    """
    courses = await _get_client().get_required_courses()
    filtered = filter_courses(courses, grade, semester, category)
    summary = summarize_courses(filtered)
    summary["filters"] = {"grade": grade, "semester": semester, "category": category}
    summary["courses"] = filtered
    return _to_json(summary)


# Calendar


def resolve_calendar_range(
    from_date: str | None = None,
    to_date: str | None = None,
    period: str | None = None,
):
    """Pick the query range: period wins, then from/to, then from alone as one day.

    Returns None when nothing was given so the default range applies.
    """
    if period:
        return period_range(period)
    if from_date and to_date:
        return create_date_range(from_date, to_date)
    if from_date:
        return single_day_range(from_date)
    if to_date:
        raise InputValidationError("to_date requires from_date")
    return None


@mcp.tool()
@_handle_errors("get_schedule")
async def get_schedule(date: str | None = None) -> str:
    """
    Get the personal schedule for a day.

    Args:
        date: Day in YYYY-MM-DD format; defaults to the coming week.

    Returns:
        JSON array of schedule items
    """
    schedule = await _get_client().get_schedule_by_date(date)
    return _to_json(schedule)


@mcp.tool()
@_handle_errors("get_calendar_events")
async def get_calendar_events(
    calendar_type: str = "personal",
    from_date: str | None = None,
    to_date: str | None = None,
    period: str | None = None,
) -> str:
    """
    Get calendar events from the personal (Google) or school calendar.

    Args:
        calendar_type: personal or school.
        from_date: Start day (YYYY-MM-DD). Alone, queries that single day.
        to_date: End day (YYYY-MM-DD), at least one day after from_date.
        period: today, week or month; overrides the dates.

    Returns:
        Header line and a JSON array of schedule items
    """
    date_range = resolve_calendar_range(from_date, to_date, period)
    schedule = await _get_client().get_schedule(calendar_type, date_range)
    if date_range:
        span = f"from {date_range.start.date()} to {date_range.end.date()}"
    else:
        span = "(default week)"
    return f"Calendar events ({calendar_type}) {span}\n\n{_to_json(schedule)}"


@mcp.tool()
@_handle_errors("test_calendar_endpoints")
async def test_calendar_endpoints(from_date: str | None = None, to_date: str | None = None) -> str:
    """
    Try both calendar procedures and report which one works.

    Returns:
        JSON with success, count and error per calendar
    """
    date_range = resolve_calendar_range(from_date, to_date)
    results = await _get_client().test_calendar_endpoints(date_range)
    return _to_json(results)


# Session


@mcp.tool()
@_handle_errors("set_cookies")
async def set_cookies(cookies: str) -> str:
    """
    Set the session from a Cookie header copied out of a logged-in browser.

    Args:
        cookies: Full cookie string, "name=value; name2=value2".
    """
    client = _get_client()
    if not client.set_cookies(cookies):
        raise InputValidationError("No cookies provided; the cookie string was empty.")
    return f"Cookies set.\n\n{client.cookie_status()}"


@mcp.tool()
@_handle_errors("check_cookies")
async def check_cookies() -> str:
    """Show what the current session holds."""
    return _get_client().cookie_status()


@mcp.tool()
@_handle_errors("verify_authentication")
async def verify_authentication() -> str:
    """Check the cookies, run the health probes and suggest next steps."""
    client = _get_client()
    status = client.session.status()
    lines = [client.cookie_status(), ""]
    if status["has_cookies"]:
        report = await HealthChecker(client).run()
        lines.extend([report.render(), ""])
    lines.append("Recommendations:")
    lines.extend(f"- {rec}" for rec in auth_recommendations(status))
    return "\n".join(lines)


@mcp.tool()
@_handle_errors("interactive_login")
async def interactive_login() -> str:
    """
    Open a browser window, wait for you to sign in, and capture the session.

    The login budget is five minutes split over three attempts.
    """
    client = _get_client()
    extracted = await BrowserLogin(client.config).interactive_login()
    client.set_cookies(extracted.all_cookies)
    mark = {True: "present", False: "missing"}
    return "\n".join(
        [
            "Logged in to N Lobby.",
            "",
            f"Session token: {mark[extracted.session_token is not None]}",
            f"CSRF token: {mark[extracted.csrf_token is not None]}",
            f"Callback URL: {extracted.callback_url or 'not set'}",
        ]
    )


# Diagnostics


@mcp.tool()
@_handle_errors("health_check")
async def health_check() -> str:
    """Probe the portal in priority order and report the first that works."""
    report = await HealthChecker(_get_client()).run()
    text = report.render()
    if not report.healthy:
        text += f"\nHint: {REAUTH_HINT}"
    return text


@mcp.tool()
@_handle_errors("debug_connection")
async def debug_connection(endpoint: str = "/news") -> str:
    """
    Detailed connection report for one portal path.

    Args:
        endpoint: Path to fetch (default /news).
    """
    return await HealthChecker(_get_client()).debug_connection(endpoint)


@mcp.tool()
@_handle_errors("test_page_content")
async def test_page_content(endpoint: str = "/news", length: int = 1000) -> str:
    """
    Fetch a page and show its markers plus a sample of the HTML.

    Args:
        endpoint: Path to fetch (default /news).
        length: Number of characters of HTML to include.
    """
    return await HealthChecker(_get_client()).test_page_content(endpoint, length)


@mcp.tool()
@_handle_errors("test_trpc_endpoint")
async def test_trpc_endpoint(method: str, params: str | None = None) -> str:
    """
    Call one tRPC procedure and show the raw result.

    Args:
        method: Procedure name, e.g. "news.getUnreadNewsCount".
        params: JSON-encoded input.
    """
    parsed = None
    if params:
        try:
            parsed = json.loads(params)
        except ValueError as e:
            raise InputValidationError(f"params is not valid JSON: {e}") from e
    record = await HealthChecker(_get_client()).test_procedure(method, parsed)
    return _to_json(record)


@mcp.tool()
@_handle_errors("discover_news_endpoints")
async def discover_news_endpoints() -> str:
    """Sweep the known news listing procedures and report what each returned."""
    client = _get_client()
    lines = ["News endpoint discovery", ""]
    for table in (NEWS_LISTING_CANDIDATES, GENERIC_LISTING_CANDIDATES):
        result = await discover(
            client.procedures,
            table,
            attempts=client.config.discovery_attempts,
            backoff=client.config.discovery_backoff,
        )
        lines.extend(
            f"[{'ok' if outcome.ok else 'fail'}] {outcome.label}: {outcome.detail}"
            for outcome in result.attempts
        )
        if result.found:
            lines.extend(["", f"Found {len(result.records)} records via {result.label}"])
            return "\n".join(lines)
    lines.extend(["", "No listing procedure returned data.", f"Hint: {DIAGNOSE_HINT}"])
    return "\n".join(lines)


# Resources


@mcp.resource("nlobby://news", name="news", mime_type="application/json")
@_handle_errors("news_resource")
async def news_resource() -> str:
    """Latest news items."""
    feed = await _get_client().get_news()
    return _to_json(feed.items)


@mcp.resource("nlobby://schedule", name="schedule", mime_type="application/json")
@_handle_errors("schedule_resource")
async def schedule_resource() -> str:
    """Personal schedule for the coming week."""
    return _to_json(await _get_client().get_schedule_by_date(None))


@mcp.resource("nlobby://user-profile", name="user-profile", mime_type="application/json")
@_handle_errors("user_profile_resource")
async def user_profile_resource() -> str:
    """Profile of the signed-in user."""
    return _to_json(await _get_client().get_user_info())


@mcp.resource("nlobby://required-courses", name="required-courses", mime_type="application/json")
@_handle_errors("required_courses_resource")
async def required_courses_resource() -> str:
    """Required courses with the progress summary."""
    courses = await _get_client().get_required_courses()
    summary = summarize_courses(courses)
    summary["courses"] = courses
    return _to_json(summary)
