"""
errors.py — Risk engine exception hierarchy.

Routes never build error responses for these by hand: main.py registers one
exception handler for RiskEngineError that maps each subclass to its status
code and the standard {error: {code, message, details}} envelope.

Messages on these exceptions are returned to callers, so they must stay generic.
Diagnostic detail goes to the log, not into the message.
"""


class RiskEngineError(Exception):
    """Base class for all risk engine failures."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class PreconditionError(RiskEngineError):
    """A required identifier (session id, customer id) is missing. Nothing was computed."""

    status_code = 400
    code = "BAD_REQUEST"


class SessionNotFoundError(RiskEngineError):
    """The session has no checkout events in the scoring window."""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, message: str = "Session not found"):
        super().__init__(message)


class UpstreamFetchError(RiskEngineError):
    """The primary event fetch failed, so the session cannot be scored."""

    status_code = 500
    code = "UPSTREAM_ERROR"

    def __init__(self, message: str = "Failed to fetch session data"):
        super().__init__(message)
