"""
Error taxonomy for the credential lifecycle.

SessionError subclasses are what callers of the session authority see.
TokenEndpointError subclasses are raised by the token endpoint client and are
resolved inside the session authority; they never reach route handlers.
"""


class SessionError(Exception):
    """Base for typed outcomes surfaced by the session authority."""

    code = "SessionError"
    message = "Session error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)


class NotAuthenticated(SessionError):
    code = "Unauthorized"
    message = "Authentication required"


class SessionExpired(SessionError):
    code = "SessionExpired"
    message = "Session expired, please sign in again"


class RefreshTemporarilyUnavailable(SessionError):
    code = "RefreshTemporarilyUnavailable"
    message = "Could not refresh the session right now, please try again"


class SignInFailed(SessionError):
    """Initial authorization grant exchange failed.

    reason is one of the /auth/error codes: Configuration, AccessDenied, Verification, Default.
    """

    code = "SignInFailed"
    message = "Sign-in failed"

    def __init__(self, message: str | None = None, reason: str = "Default"):
        super().__init__(message)
        self.reason = reason


class TokenEndpointError(Exception):
    """Base for failures reported by the token endpoint client."""

    def __init__(self, message: str, status_code: int | None = None, error: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.error = error


class RefreshRejected(TokenEndpointError):
    """Provider refused the refresh token (revoked, expired, invalid). Terminal."""


class RefreshUnavailable(TokenEndpointError):
    """Refresh failed for transient reasons (network, timeout, 429, 5xx). Retryable."""


class GrantExchangeFailed(TokenEndpointError):
    """Authorization code exchange failed."""
