"""Admission services: token verification, rate limiting and their stores."""

from admission.app.services.admission import AdmissionDecision, AdmissionGate
from admission.app.services.counter_store import (
    CounterStore,
    InMemoryCounterStore,
    RedisCounterStore,
)
from admission.app.services.models import (
    AuthErrorCode,
    Credential,
    Principal,
    RateLimitDecision,
    RateLimitPolicy,
    TokenKind,
    VerificationResult,
)
from admission.app.services.principal_directory import (
    InMemoryPrincipalDirectory,
    PrincipalDirectory,
    PrincipalRecord,
)
from admission.app.services.rate_limiter import RateLimiter
from admission.app.services.session_store import (
    InMemorySessionStore,
    RedisSessionStore,
    SessionStore,
)
from admission.app.services.token_issuer import TokenIssuer
from admission.app.services.token_verifier import TokenVerifier

__all__ = [
    "AdmissionDecision",
    "AdmissionGate",
    "AuthErrorCode",
    "CounterStore",
    "Credential",
    "InMemoryCounterStore",
    "InMemoryPrincipalDirectory",
    "InMemorySessionStore",
    "Principal",
    "PrincipalDirectory",
    "PrincipalRecord",
    "RateLimitDecision",
    "RateLimitPolicy",
    "RateLimiter",
    "RedisCounterStore",
    "RedisSessionStore",
    "SessionStore",
    "TokenIssuer",
    "TokenKind",
    "TokenVerifier",
    "VerificationResult",
]
