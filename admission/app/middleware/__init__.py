"""Middleware package for the admission gate."""

from admission.app.middleware.admission import AdmissionMiddleware
from admission.app.middleware.auth import require_principal
from admission.app.middleware.request_id import RequestIdMiddleware, get_request_id

__all__ = [
    "AdmissionMiddleware",
    "RequestIdMiddleware",
    "get_request_id",
    "require_principal",
]
