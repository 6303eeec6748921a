"""Custom exceptions for the admission gate.

Request-level authentication rejections are not exceptions: the token
verifier returns them as values. The classes below cover infrastructure
failures and programmer errors.
"""


class AdmissionException(Exception):
    """Base class for admission exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code and error_code for consistent HTTP
    response handling.
    """
    status_code: int = 500
    error_code: str = "internal_error"
    public_message: str = "Internal server error"

    def __init__(self, message: str = "Admission error"):
        self.message = message
        super().__init__(message)


class AuthenticationError(AdmissionException):
    """Raised when an endpoint requires a principal and none was resolved.

    Maps to HTTP 401 Unauthorized.
    """
    status_code = 401
    error_code = "authentication_required"
    public_message = "Authentication required"

    def __init__(self, detail: str = "Missing or invalid credentials"):
        self.detail = detail
        super().__init__(detail)


class RateLimitStoreError(AdmissionException):
    """Raised when the rate limit counter store is unreachable or timed out.

    This is distinct from a request being over its limit. Callers decide
    whether to fail open or fail closed. Maps to HTTP 503.
    """
    status_code = 503
    error_code = "rate_limit_unavailable"
    public_message = "Service temporarily unavailable"

    def __init__(self, reason: str = "unavailable", detail: str | None = None):
        self.reason = reason
        super().__init__(detail or f"Counter store error: {reason}")


class SessionStoreError(AdmissionException):
    """Raised when the session store cannot be queried. Maps to HTTP 503."""
    status_code = 503
    error_code = "auth_unavailable"
    public_message = "Service temporarily unavailable"

    def __init__(self, reason: str = "unavailable", detail: str | None = None):
        self.reason = reason
        super().__init__(detail or f"Session store error: {reason}")


class PolicyConfigurationError(ValueError):
    """Raised for invalid limiter or verifier configuration.

    Signals a programming error, checked once at construction time and
    never per request.
    """
