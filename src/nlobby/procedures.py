"""Client for the portal's internal tRPC procedures.

Procedures live under /api/trpc/<name>. A call is tried as a GET with the
JSON input in the query string first and, on any failure other than an
expired session, retried as a JSON-RPC shaped POST.
"""

import itertools
import json
from typing import Any

from src.nlobby.errors import BridgeError, ProcedureError, SessionExpiredError
from src.nlobby.logging import get_logger
from src.nlobby.transport import PortalTransport

TRPC_PREFIX = "/api/trpc"

# Probes used by health_check, cheapest first
HEALTH_PROCEDURES = (
    ("user.updateLastAccess", None),
    ("news.getUnreadNewsCount", None),
    ("menu.findMainNavigations", {}),
)


def unwrap_result(procedure: str, body: Any) -> Any:
    """Return the result member of a tRPC response body.

    Raises:
        ProcedureError: If the body carries an in-band error object.
    """
    if isinstance(body, dict):
        error = body.get("error")
        if error:
            if isinstance(error, dict):
                # superjson transformers nest the error under "json"
                inner = error.get("json") if isinstance(error.get("json"), dict) else error
                code = inner.get("code")
                message = inner.get("message") or json.dumps(error, ensure_ascii=False)
            else:
                code, message = None, str(error)
            raise ProcedureError(procedure, code, message)
        if "result" in body:
            return body["result"]
    return body


class ProcedureClient:
    """Calls named tRPC procedures with GET-then-POST fallback.

    Args:
        transport: Portal transport (shares the session store).
        timeout: Per-attempt timeout in seconds.
        logger: Optional structlog logger.
    """

    def __init__(self, transport: PortalTransport, timeout: float = 15.0, logger=None):
        self.transport = transport
        self.timeout = timeout
        self.log = logger or get_logger(__name__)
        self._ids = itertools.count(1)

    def auth_headers(self) -> dict[str, str]:
        session = self.transport.session
        headers = {}
        if session.session_token:
            headers["Authorization"] = f"Bearer {session.session_token}"
        if session.csrf_token:
            headers["X-CSRF-Token"] = session.csrf_token
        return headers

    async def call(self, procedure: str, params: Any = None) -> Any:
        """Invoke a procedure and return its result payload.

        Args:
            procedure: Dotted procedure name, e.g. "news.getUnreadNewsCount".
            params: JSON-serialisable input; {} is sent when omitted.

        Returns:
            The response's result member (the whole body when it has none).

        Raises:
            SessionExpiredError: On 401 from the GET attempt; not retried.
            ProcedureError: If the POST attempt returned an in-band error.
            TransportError / NetworkError: If the POST attempt failed.
        """
        request_id = next(self._ids)
        path = f"{TRPC_PREFIX}/{procedure}"
        self.log.info("procedure_called", procedure=procedure, has_params=params is not None)

        try:
            body = await self.transport.get_json(
                path,
                params={"input": json.dumps(params if params is not None else {})},
                headers=self.auth_headers(),
                timeout=self.timeout,
            )
            result = unwrap_result(procedure, body)
            self.log.debug("procedure_succeeded", procedure=procedure, attempt="get")
            return result
        except SessionExpiredError:
            raise
        except BridgeError as e:
            self.log.debug(
                "procedure_get_failed",
                procedure=procedure,
                error=str(e),
                fallback="post",
            )

        body = await self.transport.post_json(
            path,
            {"id": request_id, "method": procedure, "params": params},
            headers=self.auth_headers(),
            timeout=self.timeout,
        )
        result = unwrap_result(procedure, body)
        self.log.debug("procedure_succeeded", procedure=procedure, attempt="post")
        return result

    async def mutate(self, procedure: str, payload: Any, referer: str | None = None) -> Any:
        """POST a raw JSON input to a procedure (no GET attempt)."""
        headers = self.auth_headers()
        if referer:
            headers["Referer"] = referer
        body = await self.transport.post_json(
            f"{TRPC_PREFIX}/{procedure}", payload, headers=headers, timeout=self.timeout
        )
        return unwrap_result(procedure, body)

    # Known procedures

    async def get_unread_news_count(self) -> Any:
        return await self.call("news.getUnreadNewsCount")

    async def get_notification_messages(self) -> Any:
        return await self.call("notification.getMessages")

    async def update_last_access(self) -> Any:
        return await self.call("user.updateLastAccess")

    async def find_main_navigations(self) -> Any:
        return await self.call("menu.findMainNavigations", {})

    async def read_interests_with_icon(self) -> Any:
        return await self.call("interest.readInterestsWithIcon")

    async def read_interests(self) -> Any:
        return await self.call("interest.readInterests")

    async def read_weights(self) -> Any:
        return await self.call("interest.readWeights")

    async def get_google_calendar_events(self, start: str, end: str) -> Any:
        return await self.call("calendar.getGoogleCalendarEvents", {"from": start, "to": end})

    async def get_lobby_calendar_events(self, start: str, end: str) -> Any:
        return await self.call("calendar.getLobbyCalendarEvents", {"from": start, "to": end})

    async def get_required_courses(self) -> Any:
        return await self.call("requiredCourse.getRequiredCourses")

    async def upsert_browsing_history(self, news_id: str, referer: str | None = None) -> Any:
        return await self.mutate("news.upsertBrowsingHistory", str(news_id), referer=referer)

    async def health_check(self) -> bool:
        """Return True as soon as any cheap procedure answers."""
        for procedure, params in HEALTH_PROCEDURES:
            try:
                await self.call(procedure, params)
            except BridgeError as e:
                self.log.debug("health_procedure_failed", procedure=procedure, error=str(e))
                continue
            self.log.info("health_procedure_passed", procedure=procedure)
            return True
        self.log.error("health_procedures_failed")
        return False
