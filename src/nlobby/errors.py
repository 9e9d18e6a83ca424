"""Error hierarchy for portal access and retry classification.

TransientError subclasses are retried by tenacity where a bounded retry policy
exists (endpoint discovery, browser login); PermanentError subclasses are not.
Every error carries a short remediation hint that caller-facing messages embed.

Example usage with tenacity:
    @retry(retry=retry_if_exception_type(TransientError), stop=stop_after_attempt(2))
    async def probe(name: str):
        ...
"""

REAUTH_HINT = "Run interactive_login or set_cookies to re-authenticate."
CONNECTIVITY_HINT = "Check network connectivity, then run health_check."
DIAGNOSE_HINT = "Run debug_connection for a detailed report."


class BridgeError(Exception):
    """Base exception for all portal bridge errors."""

    hint = DIAGNOSE_HINT

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        if hint is not None:
            self.hint = hint

    def describe(self) -> str:
        """Render the message followed by its remediation hint."""
        return f"{self}\nHint: {self.hint}"


class TransientError(BridgeError):
    """Temporary failure that may succeed on retry.

    Examples: network timeouts, refused connections, 503 Service Unavailable.
    """

    pass


class PermanentError(BridgeError):
    """Failure that won't succeed on retry.

    Examples: expired session, rejected input, unrecognised response shape.
    """

    pass


class NetworkError(TransientError):
    """No response was received.

    kind is one of: timeout, connection, dns, protocol, unknown.
    """

    hint = CONNECTIVITY_HINT

    def __init__(self, message: str, *, kind: str = "unknown", hint: str | None = None):
        super().__init__(message, hint=hint)
        self.kind = kind


class TransportError(BridgeError):
    """The portal responded with a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        status: int,
        body: str = "",
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.status = status
        self.body = body

    @property
    def retryable(self) -> bool:
        return self.status >= 500


class SessionExpiredError(TransportError, PermanentError):
    """HTTP 401 while a session was set - cookies expired or were revoked.

    Surfaced as-is, never retried.
    """

    hint = REAUTH_HINT

    def __init__(self, message: str = "Authentication expired", *, body: str = ""):
        super().__init__(message, status=401, body=body)


class AuthenticationError(PermanentError):
    """Login failed or the portal served a login/access-denied page.

    Requires human intervention, cannot be fixed by retry.
    """

    hint = REAUTH_HINT


class ProcedureError(BridgeError):
    """A remote procedure answered with an in-band error object."""

    def __init__(self, procedure: str, code: object, message: str) -> None:
        super().__init__(f"tRPC error in {procedure} [{code}]: {message}")
        self.procedure = procedure
        self.code = code
        self.message = message


class InputValidationError(PermanentError, ValueError):
    """Caller input rejected before any network call."""

    hint = "Check the input parameters and try again."


class UnexpectedResponseError(PermanentError):
    """A response did not match any known shape."""

    pass
