"""Health probes and connection diagnostics.

HealthChecker only observes: it calls through the PortalClient's transport
and procedure client and never changes session state.
"""

import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from src.nlobby.api import PortalClient
from src.nlobby.errors import BridgeError, NetworkError, TransportError
from src.nlobby.extraction.engine import LOGIN_INDICATORS
from src.nlobby.extraction.fragments import PUSH_MARKER
from src.nlobby.logging import get_logger

NEWS_CONTENT_WORDS = ("news", "お知らせ", "nlobby")
IMPORTANT_HEADERS = ("set-cookie", "location", "cache-control", "server")
DEBUG_TRPC_PROCEDURE = "news.getUnreadNewsCount"
GRID_MARKER = 'role="row"'


@dataclass
class ProbeResult:
    name: str
    passed: bool
    detail: str = ""


@dataclass
class HealthReport:
    """Outcome of HealthChecker.run.

    healthy is True when any probe passed; limited is True when only the
    basic connectivity probe did.
    """

    healthy: bool
    probes: list[ProbeResult] = field(default_factory=list)
    limited: bool = False
    diagnosis: str = ""

    @property
    def passed_probe(self) -> str | None:
        return next((p.name for p in self.probes if p.passed), None)

    def render(self) -> str:
        lines = [f"Health: {'healthy' if self.healthy else 'unhealthy'}"]
        for probe in self.probes:
            lines.append(f"  [{'ok' if probe.passed else 'fail'}] {probe.name}: {probe.detail}")
        if self.limited:
            lines.append("Warning: only basic connectivity works; functionality will be limited.")
        if self.diagnosis:
            lines.append(self.diagnosis)
        return "\n".join(lines)


def analyze_page(html: str) -> list[str]:
    """Content markers found in a page, for the diagnostic reports."""
    lowered = html.lower()
    return [
        f"push fragments: {'found' if PUSH_MARKER in html else 'not found'}",
        f"__NEXT_DATA__: {'found' if '__NEXT_DATA__' in html else 'not found'}",
        f"grid rows: {'found' if GRID_MARKER in html else 'not found'}",
        f"login indicators: {', '.join(w for w in LOGIN_INDICATORS if w in lowered) or 'none'}",
        f"news content: {'yes' if any(w in lowered for w in NEWS_CONTENT_WORDS) else 'no'}",
        f"title: {_page_title(html) or 'none'}",
    ]


def _page_title(html: str) -> str | None:
    start = html.find("<title")
    if start == -1:
        return None
    start = html.find(">", start) + 1
    end = html.find("</title>", start)
    return html[start:end].strip() if end > start else None


def auth_recommendations(status: dict) -> list[str]:
    """Remediation steps for the verify_authentication report."""
    if not status["has_cookies"]:
        return [
            "No cookies are set. Run interactive_login, or copy the cookies from a "
            "logged-in browser session and call set_cookies.",
        ]
    recommendations = []
    if not status["session_token"]:
        recommendations.append(
            "The cookie blob has no __Secure-next-auth.session-token; copy the full "
            "Cookie header from a logged-in session."
        )
    if not status["csrf_token"]:
        recommendations.append("No CSRF token found; some procedures may reject requests.")
    if not recommendations:
        recommendations.append(
            "Cookies look complete. If requests still fail, the session has expired: "
            "log in again and refresh the cookies."
        )
    return recommendations


class HealthChecker:
    """Prioritized probes plus the debug/inspection reports.

    Args:
        client: Portal client to probe through.
        logger: Optional structlog logger.
    """

    def __init__(self, client: PortalClient, logger=None) -> None:
        self.client = client
        self.config = client.config
        self.log = logger or get_logger(__name__)

    async def _probe_unread_count(self) -> ProbeResult:
        count = await self.client.procedures.get_unread_news_count()
        if isinstance(count, dict):
            count = count.get("data")
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            return ProbeResult("unread_news_count", False, f"unexpected value {count!r}")
        return ProbeResult("unread_news_count", True, f"{count} unread")

    async def _probe_procedures(self) -> ProbeResult:
        ok = await self.client.procedures.health_check()
        return ProbeResult("procedure_health", ok, "procedure answered" if ok else "no procedure answered")

    async def _probe_news_page(self) -> ProbeResult:
        html = await self.client.transport.get_text("/news", timeout=self.config.page_probe_timeout)
        lowered = html.lower()
        if any(word in lowered for word in ("ログイン", "login", "sign-in")):
            return ProbeResult("news_page", False, "login page served")
        if not any(word in lowered for word in NEWS_CONTENT_WORDS):
            return ProbeResult("news_page", False, "no news content")
        return ProbeResult("news_page", True, f"{len(html)} chars")

    async def _probe_connectivity(self) -> ProbeResult:
        response = await self.client.transport.send("GET", "/", timeout=self.config.probe_timeout)
        ok = response.status_code < 500
        return ProbeResult("basic_connectivity", ok, f"HTTP {response.status_code}")

    async def run(self) -> HealthReport:
        """Run the probes in priority order and stop at the first that passes."""
        probes = (
            ("unread_news_count", self._probe_unread_count),
            ("procedure_health", self._probe_procedures),
            ("news_page", self._probe_news_page),
            ("basic_connectivity", self._probe_connectivity),
        )
        report = HealthReport(healthy=False)
        for name, probe in probes:
            try:
                result = await probe()
            except BridgeError as e:
                result = ProbeResult(name, False, str(e))
            report.probes.append(result)
            self.log.info("health_probe", probe=result.name, passed=result.passed)
            if result.passed:
                report.healthy = True
                report.limited = result.name == "basic_connectivity"
                return report

        status = self.client.session.status()
        if not status["has_cookies"]:
            report.diagnosis = "No cookies are set. Run interactive_login or set_cookies."
        else:
            report.diagnosis = (
                "Cookies are set but every probe failed; the session has probably "
                "expired. Log in again, then run debug_connection."
            )
        self.log.warning("health_check_failed", has_cookies=status["has_cookies"])
        return report

    async def debug_connection(self, endpoint: str = "/news") -> str:
        """Detailed connection report for one endpoint."""
        status = self.client.session.status()
        lines = [
            "Connection debug report",
            f"Time: {datetime.now(timezone.utc).isoformat()}",
            "",
            "Authentication",
            f"  cookies: {'set' if status['has_cookies'] else 'not set'} ({status['cookie_length']} chars)",
            f"  session token: {'present' if status['session_token'] else 'missing'}",
            f"  csrf token: {'present' if status['csrf_token'] else 'missing'}",
            "",
            f"Connectivity ({self.client.base_url}{endpoint})",
        ]

        started = time.monotonic()
        page_ok = False
        try:
            response = await self.client.transport.send("GET", endpoint, timeout=self.config.page_timeout)
        except NetworkError as e:
            lines.append(f"  failed: {e} (kind: {e.kind})")
        else:
            page_ok = response.is_success
            elapsed = (time.monotonic() - started) * 1000
            lines.extend(
                [
                    f"  status: {response.status_code}",
                    f"  time: {elapsed:.0f} ms",
                    f"  length: {len(response.text)}",
                    f"  content-type: {response.headers.get('content-type', 'unknown')}",
                ]
            )
            for header in IMPORTANT_HEADERS:
                if header in response.headers:
                    lines.append(f"  {header}: {response.headers[header][:120]}")
            lines.append("  content analysis:")
            lines.extend(f"    {line}" for line in analyze_page(response.text))

        lines.extend(["", f"Procedure ({DEBUG_TRPC_PROCEDURE})"])
        procedure_ok = False
        try:
            result = await self.client.procedures.call(DEBUG_TRPC_PROCEDURE)
        except BridgeError as e:
            lines.append(f"  failed: {e}")
        else:
            procedure_ok = True
            lines.append(f"  ok: {json.dumps(result, ensure_ascii=False, default=str)[:200]}")

        lines.extend(
            [
                "",
                "Network",
                f"  base url: {self.client.base_url}",
                f"  user agent: {self.config.effective_user_agent}",
                f"  timeouts: page {self.config.page_timeout}s, procedure {self.config.procedure_timeout}s",
                "",
                "Recommendations",
            ]
        )
        if not status["has_cookies"]:
            lines.append("  - Set cookies first (interactive_login or set_cookies).")
        elif not page_ok and not procedure_ok:
            lines.append("  - Both the page and the procedure failed: refresh your cookies.")
        elif not procedure_ok:
            lines.append("  - Pages load but procedures fail: the CSRF or session token may be stale.")
        else:
            lines.append("  - Connection looks fine.")
        return "\n".join(lines)

    async def test_page_content(self, endpoint: str = "/news", max_length: int = 1000) -> str:
        response = await self.client.transport.send("GET", endpoint, timeout=self.config.page_timeout)
        html = response.text
        lines = [
            f"Page content test: {endpoint}",
            f"  status: {response.status_code}",
            f"  length: {len(html)}",
            f"  content-type: {response.headers.get('content-type', 'unknown')}",
            "  analysis:",
            *(f"    {line}" for line in analyze_page(html)),
            "",
            f"Sample (first {max_length} chars):",
            html[:max_length],
        ]
        return "\n".join(lines)

    async def test_procedure(self, method: str, params: Any = None) -> dict:
        """Call one procedure and wrap the outcome in a result record."""
        record: dict[str, Any] = {
            "method": method,
            "params": params,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            record["result"] = await self.client.procedures.call(method, params)
            record["success"] = True
        except BridgeError as e:
            record["success"] = False
            record["error"] = str(e)
            record["hint"] = e.hint
            if isinstance(e, TransportError):
                record["status"] = e.status
        return record
