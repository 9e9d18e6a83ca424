"""Map loosely-shaped news records onto NewsItem / NewsDetail.

Upstream field names vary between the listing procedures, the streamed page
payload and the grid, so every canonical field is read through an ordered
alias table.
"""

from datetime import datetime
from typing import Any

from src.nlobby.dates import parse_datetime
from src.nlobby.models import NewsDetail, NewsItem

TITLE_KEYS = ("title", "name", "subject", "heading")
CONTENT_KEYS = ("content", "description", "body", "text", "summary")
CATEGORY_KEYS = ("category", "menuName", "type", "classification")
DATE_KEYS = ("publishedAt", "createdAt", "updatedAt", "date")

HIGH_PRIORITY_FLAGS = ("isImportant", "important", "urgent")
LOW_PRIORITY_FLAGS = ("minor",)

DEFAULT_CATEGORY = "General"
DEFAULT_AUDIENCE = ("student",)

# Keys consumed into canonical fields; never copied through as extras
_CANONICAL_KEYS = frozenset(
    {
        "id", "title", "content", "publishedAt", "published_at", "category",
        "priority", "targetAudience", "target_audience", "menuName", "menu_name",
        "isImportant", "is_important", "isUnread", "is_unread", "url",
    }
)


def _first(record: dict, keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = record.get(key)
        if value not in (None, "", []):
            return value
    return None


def _text(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return str(value)


def classify_priority(record: dict) -> str:
    if any(record.get(flag) is True for flag in HIGH_PRIORITY_FLAGS) or record.get("priority") == "high":
        return "high"
    if record.get("priority") == "low" or any(record.get(flag) is True for flag in LOW_PRIORITY_FLAGS):
        return "low"
    return "medium"


def news_url(base_url: str, news_id: Any) -> str:
    return f"{base_url.rstrip('/')}/news/{news_id}"


def published_at(record: dict, now: datetime | None = None) -> datetime:
    for key in DATE_KEYS:
        parsed = parse_datetime(record.get(key))
        if parsed is not None:
            return parsed
    return now or datetime.now()


def normalize_news_item(record: dict, index: int, base_url: str) -> NewsItem:
    """Build a NewsItem from one recovered record.

    Args:
        record: Loosely-typed record from extraction or discovery.
        index: Position in its listing, used for a missing id or title.
        base_url: Portal origin for the canonical URL.

    Returns:
        NewsItem with unrecognised record properties carried as extras.
    """
    raw_id = record.get("id")
    news_id = str(raw_id) if raw_id not in (None, "") else str(index)

    title = _first(record, TITLE_KEYS)
    content = _first(record, CONTENT_KEYS)
    category = _first(record, CATEGORY_KEYS)
    audience = record.get("targetAudience")

    extras = {
        key: value
        for key, value in record.items()
        if key not in _CANONICAL_KEYS and key not in NewsItem.model_fields
    }
    menu_name = record.get("menuName")

    return NewsItem(
        id=news_id,
        title=_text(title) if title is not None else f"News Item {index + 1}",
        content=_text(content) if content is not None else "",
        published_at=published_at(record),
        category=_text(category) if category is not None else DEFAULT_CATEGORY,
        priority=classify_priority(record),
        target_audience=list(audience) if isinstance(audience, list) and audience else list(DEFAULT_AUDIENCE),
        menu_name=menu_name if isinstance(menu_name, (str, list)) else None,
        is_important=record.get("isImportant") if isinstance(record.get("isImportant"), bool) else None,
        is_unread=record.get("isUnread") if isinstance(record.get("isUnread"), bool) else None,
        url=news_url(base_url, news_id),
        **extras,
    )


def normalize_news(records: list[dict], base_url: str) -> list[NewsItem]:
    return [normalize_news_item(record, i, base_url) for i, record in enumerate(records)]


def normalize_news_detail(
    record: dict, content: str | None, news_id: str, base_url: str
) -> NewsDetail:
    """Build a NewsDetail; content falls back to the record's description."""
    menu_name = record.get("menuName") or []
    if isinstance(menu_name, str):
        menu_name = [menu_name]
    description = record.get("description")
    micro_cms_id = record.get("microCmsId")
    target_query = record.get("targetUserQueryId")

    return NewsDetail(
        id=str(record.get("id") or news_id),
        micro_cms_id=str(micro_cms_id) if micro_cms_id is not None else None,
        title=record.get("title") or "No Title",
        content=content or (description if isinstance(description, str) else "") or "",
        description=description if isinstance(description, str) else None,
        published_at=parse_datetime(record.get("publishedAt")) or datetime.now(),
        menu_name=[str(m) for m in menu_name],
        is_important=bool(record.get("isImportant")),
        is_by_mentor=bool(record.get("isByMentor")),
        attachments=record.get("attachments") or [],
        related_events=record.get("relatedEvents") or [],
        target_user_query_id=str(target_query) if target_query is not None else None,
        url=news_url(base_url, news_id),
    )
