"""Endpoint discovery for listings whose procedure name is not known.

The portal's news listing procedure has been renamed between releases, so the
listing is found by sweeping an ordered table of plausible (procedure, input)
pairs. The tables below are the whole policy; discover() is the only driver.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from src.nlobby.errors import BridgeError, TransientError, TransportError
from src.nlobby.logging import get_logger
from src.nlobby.procedures import ProcedureClient

# Number of news items the portal listed when the sweep was calibrated
NEWS_PAGE_SIZE = 67


@dataclass(frozen=True)
class ProcedureCandidate:
    """One entry of a discovery table."""

    label: str
    procedure: str
    build_params: Callable[[], Any] = lambda: None


def _bare(procedure: str) -> ProcedureCandidate:
    return ProcedureCandidate(procedure, procedure)


def _paginated(procedure: str) -> ProcedureCandidate:
    return ProcedureCandidate(
        f"{procedure}_paginated",
        procedure,
        lambda: {"take": NEWS_PAGE_SIZE, "skip": 0},
    )


def _empty(procedure: str) -> ProcedureCandidate:
    return ProcedureCandidate(f"{procedure}_empty", procedure, dict)


def _filtered(procedure: str, flag: str) -> ProcedureCandidate:
    return ProcedureCandidate(
        f"{procedure}_{flag}", procedure, lambda: {"where": {flag: True}}
    )


NEWS_LISTING_CANDIDATES: tuple[ProcedureCandidate, ...] = (
    *(_bare(f"news.{m}") for m in ("find", "list", "get", "getAll", "findAll", "findMany")),
    *(_paginated(f"news.{m}") for m in ("find", "list", "getAll", "findMany")),
    *(_empty(f"news.{m}") for m in ("find", "list", "get", "getAll", "findMany")),
    *(_bare(f"news.{m}") for m in ("getList", "getItems", "getData", "getContent", "getFeed", "getPage")),
    _filtered("news.find", "published"),
    _filtered("news.find", "active"),
    _filtered("news.list", "published"),
    _filtered("news.list", "active"),
)

GENERIC_LISTING_CANDIDATES: tuple[ProcedureCandidate, ...] = (
    *(_bare(f"announcement.{m}") for m in ("find", "list", "getAll")),
    *(_bare(f"notifications.{m}") for m in ("find", "list", "getAll")),
    _bare("notification.getMessages"),
)


@dataclass
class CandidateOutcome:
    label: str
    ok: bool
    detail: str


@dataclass
class DiscoveryResult:
    """Outcome of a sweep; records is empty when no candidate produced data."""

    records: list = field(default_factory=list)
    procedure: str | None = None
    label: str | None = None
    attempts: list[CandidateOutcome] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.records)


def plausible_listing(data: Any) -> list | None:
    """Return a non-empty list from a procedure result, if there is one.

    Accepts a non-empty list, or an object with a non-empty list property
    (first such property in key order).
    """
    if isinstance(data, list):
        return data or None
    if isinstance(data, dict):
        for value in data.values():
            if isinstance(value, list) and value:
                return value
    return None


def _describe(data: Any) -> str:
    if isinstance(data, list):
        return f"array[{len(data)}]"
    if isinstance(data, dict):
        return f"object({', '.join(list(data)[:5])})"
    return type(data).__name__


async def discover(
    client: ProcedureClient,
    candidates: Sequence[ProcedureCandidate],
    *,
    attempts: int = 2,
    backoff: float = 1.0,
    logger=None,
) -> DiscoveryResult:
    """Try candidates in order until one returns a plausible listing.

    Network failures are retried per candidate (attempts, fixed backoff).
    HTTP 401 stops the sweep and propagates; 403/404/5xx, in-band procedure
    errors and exhausted retries move on to the next candidate.

    Args:
        client: Procedure client to call through.
        candidates: Ordered discovery table.
        attempts: Attempts per candidate for transient failures.
        backoff: Fixed delay in seconds between attempts.
        logger: Optional structlog logger.

    Returns:
        DiscoveryResult with the first plausible records, or empty records.

    Raises:
        TransportError: If a candidate was rejected with HTTP 401.
    """
    log = logger or get_logger(__name__)
    result = DiscoveryResult()
    log.info("discovery_started", candidates=len(candidates))

    for index, candidate in enumerate(candidates, start=1):
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                wait=wait_fixed(backoff),
                retry=retry_if_exception_type(TransientError),
                reraise=True,
            ):
                with attempt:
                    data = await client.call(candidate.procedure, candidate.build_params())
        except TransportError as e:
            if e.status == 401:
                log.error("discovery_aborted", candidate=candidate.label, status=401)
                raise
            result.attempts.append(CandidateOutcome(candidate.label, False, f"HTTP {e.status}"))
            log.debug("discovery_candidate_failed", candidate=candidate.label, status=e.status)
            continue
        except BridgeError as e:
            result.attempts.append(CandidateOutcome(candidate.label, False, str(e)))
            log.debug("discovery_candidate_failed", candidate=candidate.label, error=str(e))
            continue

        records = plausible_listing(data)
        result.attempts.append(CandidateOutcome(candidate.label, True, _describe(data)))
        if records:
            result.records = records
            result.procedure = candidate.procedure
            result.label = candidate.label
            log.info(
                "discovery_succeeded",
                candidate=candidate.label,
                position=index,
                records=len(records),
            )
            return result

    log.warning("discovery_exhausted", tried=len(result.attempts))
    return result
