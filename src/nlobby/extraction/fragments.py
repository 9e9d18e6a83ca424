"""Parser for Next.js streamed payload fragments.

App-router pages push their server payload into the document as a series of
`self.__next_f.push([slot, "payload"])` script calls. Payload strings come in
a few forms:

    "5:[[\"$\",\"$L1\",null,{...}]]"   row 5 holding JSON
    "29:T738,"                          reference marker; the text follows in
                                        the next fragment
    "29:T5,Hello"                       reference marker with inline text
    "9:Hello"                           plain text row

FragmentStream collects the decoded rows and the two text side tables that
long-form article bodies are resolved from.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any

from src.nlobby.logging import get_logger

PUSH_MARKER = "self.__next_f.push("

_PUSH_FALLBACK = re.compile(r"self\.__next_f\.push\((\[.*?\])\)", re.DOTALL)
_ROW = re.compile(r"^(\d+):(.*)$")
_REFERENCE = re.compile(r"^(\d+):T([0-9a-fA-F]+),?$")
_INLINE_REFERENCE = re.compile(r"^(\d+):T([0-9a-fA-F]+),(.+)$", re.DOTALL)
# A reference embedded anywhere in a string, e.g. a description "see 9:T5,"
_EMBEDDED_REFERENCE = re.compile(r"(\d+):T[0-9a-fA-F]+")

_decoder = json.JSONDecoder()

log = get_logger(__name__)


@dataclass
class FragmentStream:
    """Decoded view of every push fragment in a page.

    Attributes:
        fragments: Each push call's decoded array, in document order.
        rows: (row id, decoded JSON) for payloads of the "<id>:<json>" form,
            plus (None, decoded) for payloads that are bare JSON.
        references: Reference marker ("29:T738") -> referenced text.
        text_rows: Row id -> raw text for "<id>:<text>" payloads whose
            remainder is not JSON.
        failures: Number of push calls that could not be decoded.
    """

    fragments: list[list] = field(default_factory=list)
    rows: list[tuple[str | None, Any]] = field(default_factory=list)
    references: dict[str, str] = field(default_factory=dict)
    text_rows: dict[str, str] = field(default_factory=dict)
    failures: int = 0

    def resolve_reference(self, text: str | None) -> str | None:
        """Resolve the first reference marker embedded in text.

        The marker is looked up in the reference table by its full key, then
        by its row id in the text rows.
        """
        if not text:
            return None
        for match in _EMBEDDED_REFERENCE.finditer(text):
            key = match.group(0)
            if key in self.references:
                return self.references[key]
            row_id = match.group(1)
            if row_id in self.text_rows:
                return self.text_rows[row_id]
        # Markers that only match as a substring of the text (e.g. "29:T738")
        for key, content in self.references.items():
            if key in text:
                return content
        return None

    def first_reference(self) -> str | None:
        return next(iter(self.references.values()), None)


def _decode_push_arrays(html: str) -> tuple[list[list], int]:
    arrays: list[list] = []
    failures = 0
    position = html.find(PUSH_MARKER)
    while position != -1:
        start = position + len(PUSH_MARKER)
        try:
            value, _ = _decoder.raw_decode(html, start)
        except ValueError:
            value = None
            match = _PUSH_FALLBACK.match(html, position)
            if match:
                try:
                    value = json.loads(match.group(1))
                except ValueError:
                    value = None
        if isinstance(value, list):
            arrays.append(value)
        else:
            failures += 1
        position = html.find(PUSH_MARKER, start)
    return arrays, failures


def _try_json(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except ValueError:
        return False, None


def _parse_payload(stream: FragmentStream, payload: str, following: str | None) -> None:
    """Record one push payload, which may hold several newline-separated rows.

    A reference marker takes the rest of its payload as its text, or the next
    payload when it is the last line. Lines that are neither rows nor JSON
    continue the preceding text row.
    """
    inline = _INLINE_REFERENCE.match(payload)
    if inline and inline.group(3).strip():
        stream.references[f"{inline.group(1)}:T{inline.group(2)}"] = inline.group(3)
        return

    lines = payload.split("\n")
    text_row = None
    for position, line in enumerate(lines):
        if not line.strip():
            continue

        if _REFERENCE.match(line):
            key = line.rstrip(",")
            rest = "\n".join(lines[position + 1:])
            if rest.strip():
                stream.references[key] = rest
            elif following is not None:
                stream.references[key] = following
            return

        row = _ROW.match(line)
        if row:
            row_id, remainder = row.group(1), row.group(2)
            ok, decoded = _try_json(remainder)
            if ok:
                stream.rows.append((row_id, decoded))
                text_row = None
            else:
                stream.text_rows[row_id] = remainder
                text_row = row_id
            continue

        ok, decoded = _try_json(line)
        if ok:
            stream.rows.append((None, decoded))
            text_row = None
        elif text_row is not None:
            stream.text_rows[text_row] += "\n" + line


def parse_fragments(html: str) -> FragmentStream:
    """Decode every push fragment in html; undecodable fragments are skipped."""
    arrays, failures = _decode_push_arrays(html)
    stream = FragmentStream(fragments=arrays, failures=failures)

    payloads = [
        fragment[1] if len(fragment) >= 2 and isinstance(fragment[1], str) else None
        for fragment in arrays
    ]

    for index, payload in enumerate(payloads):
        if payload is None:
            continue
        following = payloads[index + 1] if index + 1 < len(payloads) else None
        _parse_payload(stream, payload, following)

    log.debug(
        "fragments_parsed",
        fragments=len(arrays),
        rows=len(stream.rows),
        references=len(stream.references),
        text_rows=len(stream.text_rows),
        failures=failures,
    )
    return stream
