"""Regex-driven fallbacks for pages without streamed fragments or a grid.

Three searches, from most to least specific: the legacy __NEXT_DATA__ page
state, inline `"news": [...]`-style array literals, and a last-resort salvage
of data attributes and script-embedded arrays.
"""

import html as html_lib
import json
import re
from typing import Any

from src.nlobby.extraction.values import find_entity_array

_decoder = json.JSONDecoder()

# Order matters: the script-tag form is the one current pages use
PAGE_STATE_PATTERNS = (
    re.compile(r"window\.__NEXT_DATA__\s*=\s*({.*?})\s*(?:;|</script>)", re.DOTALL),
    re.compile(r'<script id="__NEXT_DATA__"[^>]*>([^<]*)</script>', re.DOTALL),
    re.compile(r"__NEXT_DATA__\s*=\s*({.*?})(?:;|\s*</script>)", re.DOTALL),
)

INLINE_ARRAY_KEYS = ("news", "announcements", "items", "data")
_INLINE_ARRAY = re.compile(
    r'"(%s)"\s*:\s*(?=\[)' % "|".join(INLINE_ARRAY_KEYS)
)
_NON_GREEDY_ARRAY = re.compile(r"\[.*?\]", re.DOTALL)

_DATA_ATTRIBUTE = re.compile(r'data-(?:news|items|content)="([^"]*)"')
_SCRIPT_BODY = re.compile(r"<script[^>]*>(.*?)</script>", re.DOTALL | re.IGNORECASE)

# Upper bound on array literals tried per script block
MAX_SCRIPT_ARRAYS = 200


def _decode_at(text: str, start: int, fallback: str | None = None) -> Any:
    """Decode the JSON value starting at start, else the fallback text."""
    try:
        value, _ = _decoder.raw_decode(text, start)
        return value
    except ValueError:
        pass
    if fallback is not None:
        try:
            return json.loads(fallback)
        except ValueError:
            pass
    return None


def _records(array: list | None) -> list[dict] | None:
    if not array:
        return None
    records = [item for item in array if isinstance(item, dict)]
    return records or None


def extract_page_state(html: str) -> list[dict] | None:
    """Entity array from the __NEXT_DATA__ page state, if any."""
    for pattern in PAGE_STATE_PATTERNS:
        match = pattern.search(html)
        if not match:
            continue
        state = _decode_at(html, match.start(1), match.group(1))
        if state is None:
            continue
        found = _records(find_entity_array(state))
        if found:
            return found
    return None


def extract_inline_arrays(html: str) -> list[dict] | None:
    """Entity array from a `"news": [...]`-style literal in the raw text."""
    for match in _INLINE_ARRAY.finditer(html):
        start = match.end()
        fallback = _NON_GREEDY_ARRAY.match(html, start)
        value = _decode_at(html, start, fallback.group(0) if fallback else None)
        found = _records(find_entity_array(value))
        if found:
            return found
    return None


def _script_arrays(body: str):
    position = body.find("[")
    tried = 0
    while position != -1 and tried < MAX_SCRIPT_ARRAYS:
        tried += 1
        try:
            value, end = _decoder.raw_decode(body, position)
        except ValueError:
            position = body.find("[", position + 1)
            continue
        yield value
        position = body.find("[", end)


def salvage_arrays(html: str) -> list[dict] | None:
    """Last resort: data attributes and any array literal inside a script.

    Only arrays that pass the entity-shape heuristic are returned.
    """
    for match in _DATA_ATTRIBUTE.finditer(html):
        raw = html_lib.unescape(match.group(1))
        try:
            value = json.loads(raw)
        except ValueError:
            continue
        found = _records(find_entity_array(value))
        if found:
            return found

    for match in _SCRIPT_BODY.finditer(html):
        body = html_lib.unescape(match.group(1))
        if "[" not in body:
            continue
        for value in _script_arrays(body):
            found = _records(find_entity_array(value))
            if found:
                return found
    return None
