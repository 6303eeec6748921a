"""Admission middleware.

Runs every request through the AdmissionGate and maps its decision to HTTP:
authentication failures become 401 with a ``WWW-Authenticate`` challenge,
exhausted budgets become 429 with ``X-RateLimit-*`` headers, store outages
become 503. Response bodies carry a stable error code and a generic
message only.
"""

import time
from typing import Iterable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from admission.app.core.logging import get_log_context, get_logger
from admission.app.middleware.auth import get_client_ip, get_request_token
from admission.app.middleware.request_id import get_request_id
from admission.app.services.admission import AdmissionDecision, AdmissionGate
from admission.app.services.models import RateLimitDecision

logger = get_logger(__name__)

ERROR_MESSAGES = {
    "missing_credentials": "Authentication required",
    "malformed": "Invalid access token",
    "invalid_signature": "Invalid access token",
    "expired": "Access token expired",
    "revoked_session": "Session is no longer valid",
    "wrong_token_kind": "Invalid access token",
    "inactive_principal": "Account is not active",
    "rate_limit_exceeded": "Rate limit exceeded. Please try again later.",
    "rate_limit_unavailable": "Service temporarily unavailable",
    "auth_unavailable": "Service temporarily unavailable",
}


def rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_at),
    }


def _challenge(error_code: str) -> str:
    if error_code == "missing_credentials":
        return 'Bearer realm="api"'
    return 'Bearer realm="api", error="invalid_token"'


def build_rejection(decision: AdmissionDecision) -> JSONResponse:
    """Translate a rejected AdmissionDecision into a JSON response."""
    error_code = decision.error_code or "internal_error"
    headers: dict[str, str] = {}

    if decision.status_code == 401:
        headers["WWW-Authenticate"] = _challenge(error_code)
    if decision.rate_limit is not None:
        headers.update(rate_limit_headers(decision.rate_limit))
        if not decision.rate_limit.allowed:
            headers["Retry-After"] = str(decision.rate_limit.retry_after)

    content = {
        "error": error_code,
        "message": ERROR_MESSAGES.get(error_code, "Request rejected"),
    }
    if decision.rate_limit is not None and not decision.rate_limit.allowed:
        content["retry_after"] = decision.rate_limit.retry_after

    return JSONResponse(status_code=decision.status_code, content=content, headers=headers)


class AdmissionMiddleware(BaseHTTPMiddleware):
    """Middleware enforcing authentication and rate limits on requests.

    The admitted principal is stored on ``request.state.principal``.
    """

    def __init__(
        self,
        app,
        gate: AdmissionGate,
        exempt_paths: Optional[Iterable[str]] = None,
        cookie_name: Optional[str] = None,
        trust_forwarded_for: bool = True,
    ):
        super().__init__(app)
        self.gate = gate
        self.exempt_paths = frozenset(exempt_paths or ())
        self.cookie_name = cookie_name
        self.trust_forwarded_for = trust_forwarded_for

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request through the admission gate."""
        if request.url.path in self.exempt_paths or request.method == "OPTIONS":
            return await call_next(request)

        started = time.perf_counter()
        token = get_request_token(request, self.cookie_name)
        client_ip = get_client_ip(request, self.trust_forwarded_for)
        decision = await self.gate.evaluate(token, client_ip)

        if not decision.admitted:
            logger.info(
                f"Request rejected: {decision.error_code}",
                extra=get_log_context(
                    request_id=get_request_id(request),
                    subject_id=decision.principal.subject_id if decision.principal else None,
                    client_key=decision.client_key,
                    path=request.url.path,
                    method=request.method,
                    status_code=decision.status_code,
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                ),
            )
            return build_rejection(decision)

        request.state.principal = decision.principal
        response = await call_next(request)

        if decision.rate_limit is not None:
            for name, value in rate_limit_headers(decision.rate_limit).items():
                response.headers[name] = value
        return response
