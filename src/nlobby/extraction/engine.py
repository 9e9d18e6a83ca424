"""Extraction cascade over rendered portal pages.

ExtractionEngine runs an ordered list of strategies against one page and
returns the first non-empty record set. Each strategy is independent: a
strategy that finds nothing (or trips over malformed input) just hands over to
the next one, and once one succeeds the rest never run.

When every strategy comes back empty the result is an empty record list plus
PayloadDiagnostics describing which markers were present, so callers can tell
an expired session from a format change from a genuinely empty list.
"""

from dataclasses import dataclass, field
from typing import Protocol

from src.nlobby.extraction.dom import extract_grid_rows
from src.nlobby.extraction.fragments import PUSH_MARKER, parse_fragments
from src.nlobby.extraction.patterns import (
    extract_inline_arrays,
    extract_page_state,
    salvage_arrays,
)
from src.nlobby.extraction.text import unescape_content
from src.nlobby.extraction.values import find_detail_records, find_entity_array
from src.nlobby.logging import get_logger

LOGIN_INDICATORS = ("ログイン", "login", "sign-in", "signin")

# Raw-text markers reported by the diagnostics besides each strategy's own
CONTENT_MARKERS = ('"news"', '"announcements"')

_PARSE_ERRORS = (ValueError, TypeError, KeyError, IndexError, AttributeError, RecursionError)


class Strategy(Protocol):
    name: str
    marker: str

    def attempt(self, payload: str) -> list[dict] | None: ...


class StreamedFragmentStrategy:
    """Entity arrays inside Next.js streamed fragment rows."""

    name = "streamed_fragments"
    marker = PUSH_MARKER

    def attempt(self, payload: str) -> list[dict] | None:
        if self.marker not in payload:
            return None
        stream = parse_fragments(payload)
        for _, value in stream.rows:
            found = find_entity_array(value)
            if found:
                records = [item for item in found if isinstance(item, dict)]
                if records:
                    return records
        return None


class DataGridStrategy:
    """Rows of the server-rendered DataGrid."""

    name = "data_grid"
    marker = 'role="row"'

    def __init__(self, container_index: int = 1) -> None:
        self.container_index = container_index

    def attempt(self, payload: str) -> list[dict] | None:
        if self.marker not in payload:
            return None
        return extract_grid_rows(payload, self.container_index) or None


class PageStateStrategy:
    name = "page_state"
    marker = "__NEXT_DATA__"

    def attempt(self, payload: str) -> list[dict] | None:
        if self.marker not in payload:
            return None
        return extract_page_state(payload)


class InlineArrayStrategy:
    name = "inline_arrays"
    marker = '":['

    def attempt(self, payload: str) -> list[dict] | None:
        return extract_inline_arrays(payload)


class LooseSalvageStrategy:
    name = "loose_salvage"
    marker = "<script"

    def attempt(self, payload: str) -> list[dict] | None:
        return salvage_arrays(payload)


def default_strategies(data_grid_index: int = 1) -> list[Strategy]:
    return [
        StreamedFragmentStrategy(),
        DataGridStrategy(data_grid_index),
        PageStateStrategy(),
        InlineArrayStrategy(),
        LooseSalvageStrategy(),
    ]


@dataclass
class PayloadDiagnostics:
    """What a payload contained, for pages where extraction found nothing."""

    length: int
    markers: dict[str, bool] = field(default_factory=dict)
    login_indicators: list[str] = field(default_factory=list)

    @classmethod
    def inspect(cls, payload: str, strategies: list[Strategy]) -> "PayloadDiagnostics":
        markers = {s.name: s.marker in payload for s in strategies}
        for marker in CONTENT_MARKERS:
            markers[marker] = marker in payload
        lowered = payload.lower()
        indicators = [word for word in LOGIN_INDICATORS if word in lowered]
        return cls(length=len(payload), markers=markers, login_indicators=indicators)

    @property
    def verdict(self) -> str:
        strategy_markers = [
            present for name, present in self.markers.items() if name not in CONTENT_MARKERS
        ]
        if self.length == 0:
            return "empty_payload"
        if self.login_indicators and not any(strategy_markers):
            return "login_page"
        if not any(strategy_markers):
            return "format_changed"
        return "no_records"

    def summary(self) -> str:
        explanations = {
            "empty_payload": "The portal returned an empty page.",
            "login_page": "The page looks like a login screen; the session has probably expired.",
            "format_changed": "None of the known data markers are present; the page format may have changed.",
            "no_records": "Data markers are present but no records were recognised; the list may be empty.",
        }
        lines = [f"Payload length: {self.length}"]
        for name, present in self.markers.items():
            lines.append(f"  {name}: {'found' if present else 'not found'}")
        if self.login_indicators:
            lines.append(f"  login indicators: {', '.join(self.login_indicators)}")
        lines.append(explanations[self.verdict])
        return "\n".join(lines)


@dataclass
class ExtractionResult:
    records: list[dict]
    strategy: str | None = None
    diagnostics: PayloadDiagnostics | None = None

    def __bool__(self) -> bool:
        return bool(self.records)


@dataclass
class DetailResult:
    record: dict | None
    content: str | None = None
    diagnostics: PayloadDiagnostics | None = None

    @property
    def found(self) -> bool:
        return self.record is not None


class ExtractionEngine:
    """Runs the strategy cascade over rendered pages.

    Args:
        strategies: Ordered strategies; defaults to default_strategies().
        data_grid_index: Presentation container index for the grid strategy.
        logger: Optional structlog logger.
    """

    def __init__(
        self,
        strategies: list[Strategy] | None = None,
        *,
        data_grid_index: int = 1,
        logger=None,
    ) -> None:
        self.strategies = strategies if strategies is not None else default_strategies(data_grid_index)
        self.log = logger or get_logger(__name__)

    def extract(self, payload: str) -> ExtractionResult:
        """Recover a record list from one page.

        Returns:
            ExtractionResult naming the winning strategy, or an empty result
            carrying diagnostics.
        """
        for strategy in self.strategies:
            try:
                records = strategy.attempt(payload)
            except _PARSE_ERRORS as e:
                self.log.warning(
                    "strategy_failed",
                    strategy=strategy.name,
                    error=str(e),
                    type=type(e).__name__,
                )
                continue
            if records:
                self.log.info("extraction_succeeded", strategy=strategy.name, records=len(records))
                return ExtractionResult(records=records, strategy=strategy.name)
            self.log.debug("strategy_empty", strategy=strategy.name)

        diagnostics = PayloadDiagnostics.inspect(payload, self.strategies)
        self.log.warning("extraction_empty", verdict=diagnostics.verdict, length=len(payload))
        return ExtractionResult(records=[], diagnostics=diagnostics)

    def extract_detail(self, payload: str, news_id: str | None = None) -> DetailResult:
        """Recover a single article record and its long-form body.

        A record whose id equals news_id is preferred over the first match.
        The body is resolved from the reference marker in the record's
        description, then the first referenced text on the page; it is None
        when the page carries no referenced text.
        """
        stream = parse_fragments(payload) if PUSH_MARKER in payload else None
        candidates: list[dict] = []
        if stream is not None:
            for _, value in stream.rows:
                candidates.extend(find_detail_records(value))

        if not candidates:
            diagnostics = PayloadDiagnostics.inspect(payload, self.strategies)
            self.log.warning("detail_not_found", news_id=news_id, verdict=diagnostics.verdict)
            return DetailResult(record=None, diagnostics=diagnostics)

        record = candidates[0]
        if news_id is not None:
            record = next(
                (c for c in candidates if str(c.get("id")) == str(news_id)), record
            )

        description = record.get("description")
        content = stream.resolve_reference(description if isinstance(description, str) else None)
        if content is None:
            content = stream.first_reference()
        if content is not None:
            content = unescape_content(content)

        self.log.info(
            "detail_extracted",
            news_id=record.get("id"),
            candidates=len(candidates),
            has_content=content is not None,
        )
        return DetailResult(record=record, content=content)
