"""Admission gate: token verification followed by rate limiting.

The gate is transport-agnostic. It turns a raw credential and a client
address into an AdmissionDecision; the HTTP middleware maps that decision
onto status codes and headers.
"""

import hashlib
from dataclasses import dataclass
from typing import Optional

from admission.app.core.logging import get_logger
from admission.app.exceptions import RateLimitStoreError, SessionStoreError
from admission.app.services.models import (
    Principal,
    RateLimitDecision,
    RateLimitPolicy,
)
from admission.app.services.rate_limiter import RateLimiter
from admission.app.services.token_verifier import TokenVerifier

logger = get_logger(__name__)

MISSING_CREDENTIALS = "missing_credentials"
RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of running a request through the gate."""
    admitted: bool
    status_code: int = 200
    error_code: Optional[str] = None
    principal: Optional[Principal] = None
    rate_limit: Optional[RateLimitDecision] = None
    client_key: Optional[str] = None


def hash_identifier(value: str) -> str:
    """Hash a client identifier for use in keys and logs.

    Uses 32 hex chars (128 bits) of SHA-256 for collision resistance.
    """
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:32]


def user_key(subject_id: str) -> str:
    return f"user:{subject_id}"


def ip_key(client_ip: str) -> str:
    return f"ip:{hash_identifier(client_ip)}"


class AdmissionGate:
    """Combines a TokenVerifier and a RateLimiter in front of handlers.

    Authenticated requests are limited per subject with ``user_policy``;
    anonymous requests (only when ``require_auth`` is False) per client IP
    with ``anonymous_policy``.
    """

    def __init__(
        self,
        verifier: TokenVerifier,
        limiter: RateLimiter,
        user_policy: RateLimitPolicy,
        anonymous_policy: Optional[RateLimitPolicy] = None,
        require_auth: bool = True,
        fail_closed: bool = False,
    ) -> None:
        self.verifier = verifier
        self.limiter = limiter
        self.user_policy = user_policy
        self.anonymous_policy = anonymous_policy or user_policy
        self.require_auth = require_auth
        self.fail_closed = fail_closed

    async def evaluate(self, raw_token: Optional[str], client_ip: str) -> AdmissionDecision:
        """Decide whether a request may reach its handler.

        Args:
            raw_token: Bearer credential, or None if the request carried none
            client_ip: Client address used for anonymous rate limiting

        Returns:
            AdmissionDecision. Never raises for bad input or store outages.
        """
        principal: Optional[Principal] = None

        if raw_token:
            try:
                result = await self.verifier.verify(raw_token)
            except SessionStoreError as e:
                logger.error(f"Session lookup failed during admission: {e.reason}")
                return AdmissionDecision(
                    admitted=False, status_code=e.status_code, error_code=e.error_code
                )
            if not result.ok:
                return AdmissionDecision(
                    admitted=False, status_code=401, error_code=result.error.value
                )
            principal = result.principal
        elif self.require_auth:
            return AdmissionDecision(
                admitted=False, status_code=401, error_code=MISSING_CREDENTIALS
            )

        if principal is not None:
            key, policy = user_key(principal.subject_id), self.user_policy
        else:
            key, policy = ip_key(client_ip), self.anonymous_policy

        try:
            decision = await self.limiter.check(key, policy)
        except RateLimitStoreError as e:
            return self._on_store_failure(e, key, principal)

        if not decision.allowed:
            return AdmissionDecision(
                admitted=False,
                status_code=429,
                error_code=RATE_LIMIT_EXCEEDED,
                principal=principal,
                rate_limit=decision,
                client_key=key,
            )

        return AdmissionDecision(
            admitted=True, principal=principal, rate_limit=decision, client_key=key
        )

    def _on_store_failure(
        self, error: RateLimitStoreError, key: str, principal: Optional[Principal]
    ) -> AdmissionDecision:
        """Apply the configured fail-open/fail-closed policy."""
        if self.fail_closed:
            logger.warning(
                f"Rate limiting fail-closed triggered due to {error.reason}. Request denied.",
                extra={"client_key": key},
            )
            return AdmissionDecision(
                admitted=False,
                status_code=error.status_code,
                error_code=error.error_code,
                principal=principal,
                client_key=key,
            )

        logger.warning(
            f"Rate limiting fail-open triggered due to {error.reason}. "
            "Request allowed without rate limit check.",
            extra={"client_key": key},
        )
        return AdmissionDecision(admitted=True, principal=principal, client_key=key)
