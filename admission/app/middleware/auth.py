from typing import Optional

from fastapi import Request

from admission.app.exceptions import AuthenticationError
from admission.app.services.models import Principal


def get_bearer_token(request: Request) -> str | None:
    """Extract Bearer token from Authorization header.

    Args:
        request: The incoming request

    Returns:
        The token string if present, None otherwise
    """
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth.replace("Bearer ", "", 1).strip() or None


def get_request_token(request: Request, cookie_name: Optional[str] = None) -> str | None:
    """Extract the credential from the Authorization header or, failing that, a cookie."""
    token = get_bearer_token(request)
    if token is None and cookie_name:
        token = (request.cookies.get(cookie_name) or "").strip() or None
    return token


def get_client_ip(request: Request, trust_forwarded_for: bool = True) -> str:
    """Client address, taken from X-Forwarded-For when the proxy is trusted."""
    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()
            if client_ip:
                return client_ip
    return request.client.host if request.client else "unknown"


def require_principal(request: Request) -> Principal:
    """FastAPI dependency returning the principal admitted for this request.

    Raises:
        AuthenticationError: 401 if the request was admitted anonymously
            or the route bypassed the admission middleware
    """
    principal = getattr(request.state, "principal", None)
    if principal is None:
        raise AuthenticationError()
    return principal
