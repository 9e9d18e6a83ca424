"""In-memory NextAuth session state.

SessionStore holds the raw cookie blob captured after login (the authoritative
credential, forwarded verbatim on every request) and the named tokens derived
from it. Nothing is ever written to disk.
"""

from urllib.parse import quote, unquote

from src.nlobby.logging import get_logger
from src.nlobby.models import SessionTokens

SESSION_TOKEN_COOKIES = (
    "__Secure-next-auth.session-token",
    "next-auth.session-token",
)
CSRF_TOKEN_COOKIES = (
    "__Host-next-auth.csrf-token",
    "next-auth.csrf-token",
)
CALLBACK_URL_COOKIES = (
    "__Secure-next-auth.callback-url",
    "next-auth.callback-url",
)


def parse_cookie_blob(blob: str) -> dict[str, str]:
    """Split a Cookie header string into a name -> value mapping.

    Values are kept raw (not URL-decoded). Fragments without '=' are skipped.
    """
    cookies: dict[str, str] = {}
    for part in blob.split(";"):
        name, sep, value = part.strip().partition("=")
        if sep and name:
            cookies[name.strip()] = value.strip()
    return cookies


def derive_tokens(blob: str) -> SessionTokens:
    """Pull the NextAuth tokens out of a cookie blob by exact cookie name."""
    cookies = parse_cookie_blob(blob)

    def first(names: tuple[str, ...]) -> str | None:
        for name in names:
            if cookies.get(name):
                return unquote(cookies[name])
        return None

    return SessionTokens(
        session_token=first(SESSION_TOKEN_COOKIES),
        csrf_token=first(CSRF_TOKEN_COOKIES),
        callback_url=first(CALLBACK_URL_COOKIES),
    )


class SessionStore:
    """Holds the current cookie blob and its derived tokens.

    Owned by the PortalClient; the transport and procedure clients read from it.
    """

    def __init__(self, logger=None) -> None:
        self.log = logger or get_logger(__name__)
        self.blob: str | None = None
        self.tokens = SessionTokens()

    def set_cookies(self, blob: str) -> bool:
        """Replace the session with a new cookie blob.

        An empty or whitespace-only blob is logged and ignored, leaving any
        prior session untouched.

        Args:
            blob: Full Cookie header string as captured from the browser.

        Returns:
            True if the blob was applied.
        """
        if not blob or not blob.strip():
            self.log.warning("cookies_ignored", reason="empty_blob")
            return False

        self.blob = blob.strip()
        self.tokens = derive_tokens(self.blob)
        self.log.info(
            "cookies_set",
            length=len(self.blob),
            session_token=self.tokens.session_token is not None,
            csrf_token=self.tokens.csrf_token is not None,
            callback_url=self.tokens.callback_url is not None,
        )
        if self.tokens.session_token is None:
            self.log.warning("session_token_missing")
        return True

    def is_authenticated(self) -> bool:
        return self.tokens.session_token is not None

    @property
    def session_token(self) -> str | None:
        return self.tokens.session_token

    @property
    def csrf_token(self) -> str | None:
        return self.tokens.csrf_token

    def cookie_header(self) -> str:
        """Rebuild a reduced Cookie header from the derived tokens only."""
        parts = []
        if self.tokens.session_token:
            parts.append(f"{SESSION_TOKEN_COOKIES[0]}={self.tokens.session_token}")
        if self.tokens.csrf_token:
            parts.append(f"{CSRF_TOKEN_COOKIES[0]}={self.tokens.csrf_token}")
        if self.tokens.callback_url:
            parts.append(
                f"{CALLBACK_URL_COOKIES[0]}={quote(self.tokens.callback_url, safe='')}"
            )
        return "; ".join(parts)

    def request_cookie(self) -> str | None:
        """Cookie header value to send: the full blob, else the reduced header."""
        if self.blob:
            return self.blob
        return self.cookie_header() or None

    def clear(self) -> None:
        self.blob = None
        self.tokens = SessionTokens()
        self.log.info("session_cleared")

    def status(self) -> dict:
        """Structured view of what the session currently holds."""
        return {
            "has_cookies": self.blob is not None,
            "cookie_length": len(self.blob) if self.blob else 0,
            "cookie_count": len(parse_cookie_blob(self.blob)) if self.blob else 0,
            "authenticated": self.is_authenticated(),
            "session_token": self.tokens.session_token is not None,
            "csrf_token": self.tokens.csrf_token is not None,
            "callback_url": self.tokens.callback_url,
        }

    def status_report(self) -> str:
        """Human-readable cookie status for check_cookies."""
        status = self.status()
        mark = {True: "present", False: "missing"}
        lines = [
            "Cookie status",
            f"  Cookie blob: {'set' if status['has_cookies'] else 'not set'}"
            + (f" ({status['cookie_length']} chars, {status['cookie_count']} cookies)"
               if status["has_cookies"] else ""),
            f"  Session token: {mark[status['session_token']]}",
            f"  CSRF token: {mark[status['csrf_token']]}",
            f"  Callback URL: {status['callback_url'] or 'not set'}",
            f"  Authenticated: {'yes' if status['authenticated'] else 'no'}",
        ]
        return "\n".join(lines)
