"""Shape heuristics over untyped JSON recovered from rendered pages.

Decoded JSON is classified into a small tagged union (ValueKind) and searched
with pure functions. The key lists that drive the search are module-level
policy tables so they can be inspected and adjusted when the portal's
payloads change shape.
"""

from enum import Enum
from typing import Any

# Property names searched first, in this order, when looking for a listing
CONTAINER_KEYS: tuple[str, ...] = (
    "news",
    "announcements",
    "data",
    "items",
    "list",
    "content",
    "notifications",
    "posts",
    "feed",
    "results",
)

# An array whose first element has any of these is taken for a listing
ENTITY_SHAPE_KEYS: frozenset[str] = frozenset(
    {"title", "name", "content", "publishedAt", "menuName", "createdAt", "updatedAt", "id"}
)

# A detail record has id + title + at least one of these
DETAIL_COMPANION_KEYS: tuple[str, ...] = ("publishedAt", "description", "menuName")

# Property that wraps the detail record on article pages
DETAIL_WRAPPER_KEY = "news"

MAX_DEPTH = 64


class ValueKind(Enum):
    NULL = "null"
    SCALAR = "scalar"
    ARRAY = "array"
    OBJECT = "object"


def kind_of(value: Any) -> ValueKind:
    if value is None:
        return ValueKind.NULL
    if isinstance(value, list):
        return ValueKind.ARRAY
    if isinstance(value, dict):
        return ValueKind.OBJECT
    return ValueKind.SCALAR


def is_entity_array(value: Any) -> bool:
    """True for a non-empty array whose first element looks like a record."""
    if kind_of(value) is not ValueKind.ARRAY or not value:
        return False
    first = value[0]
    return kind_of(first) is ValueKind.OBJECT and not ENTITY_SHAPE_KEYS.isdisjoint(first)


def is_detail_record(value: Any) -> bool:
    if kind_of(value) is not ValueKind.OBJECT:
        return False
    return (
        bool(value.get("id"))
        and bool(value.get("title"))
        and any(value.get(key) for key in DETAIL_COMPANION_KEYS)
    )


def _ordered_items(obj: dict) -> list[tuple[str, Any]]:
    """Object members with container keys first (in policy order), then the rest."""
    rank = {key: i for i, key in enumerate(CONTAINER_KEYS)}
    priority = sorted(
        ((k, v) for k, v in obj.items() if k.lower() in rank),
        key=lambda item: rank[item[0].lower()],
    )
    rest = [(k, v) for k, v in obj.items() if k.lower() not in rank]
    return priority + rest


def find_entity_array(value: Any, _depth: int = 0) -> list[dict] | None:
    """Depth-first search for the first entity-shaped array.

    Objects are searched container keys first; arrays that are not themselves
    entity-shaped are searched element by element.
    """
    if _depth > MAX_DEPTH:
        return None
    kind = kind_of(value)
    if kind is ValueKind.ARRAY:
        if is_entity_array(value):
            return value
        for element in value:
            found = find_entity_array(element, _depth + 1)
            if found:
                return found
    elif kind is ValueKind.OBJECT:
        for _, member in _ordered_items(value):
            found = find_entity_array(member, _depth + 1)
            if found:
                return found
    return None


def find_detail_records(value: Any, _depth: int = 0) -> list[dict]:
    """Collect every detail-shaped record reachable from value, in document order.

    A record is either an object with id + title + a companion field, or the
    object/array held by a "news" property.
    """
    found: list[dict] = []
    if _depth > MAX_DEPTH:
        return found
    kind = kind_of(value)
    if kind is ValueKind.OBJECT:
        if is_detail_record(value):
            found.append(value)
            return found
        wrapped = value.get(DETAIL_WRAPPER_KEY)
        if kind_of(wrapped) is ValueKind.OBJECT and wrapped:
            found.append(wrapped)
            return found
        for member in value.values():
            found.extend(find_detail_records(member, _depth + 1))
    elif kind is ValueKind.ARRAY:
        for element in value:
            found.extend(find_detail_records(element, _depth + 1))
    return found
