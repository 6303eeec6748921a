"""Admission data models.

This module contains the value types shared by the token verifier,
the rate limiter and the admission gate.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Optional

from admission.app.exceptions import PolicyConfigurationError


class TokenKind(str, Enum):
    """Kind of credential carried in the ``typ`` claim."""
    ACCESS = "access"
    REFRESH = "refresh"


class AuthErrorCode(str, Enum):
    """Machine-readable reasons a credential was rejected."""
    MALFORMED = "malformed"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    REVOKED_SESSION = "revoked_session"
    WRONG_TOKEN_KIND = "wrong_token_kind"
    INACTIVE_PRINCIPAL = "inactive_principal"


@dataclass(frozen=True)
class Credential:
    """Decoded claims of a verified token."""
    subject_id: str
    issued_at: float
    expires_at: float
    kind: TokenKind
    session_id: Optional[str] = None
    roles: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class Principal:
    """Identity resolved from a credential. Never persisted."""
    subject_id: str
    active: bool = True
    roles: frozenset[str] = field(default_factory=frozenset)
    session_id: Optional[str] = None

    def has_role(self, role: str) -> bool:
        return role in self.roles


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of verifying a credential.

    Exactly one of ``principal`` and ``error`` is set.
    """
    principal: Optional[Principal] = None
    error: Optional[AuthErrorCode] = None

    @property
    def ok(self) -> bool:
        return self.principal is not None

    @classmethod
    def success(cls, principal: Principal) -> "VerificationResult":
        return cls(principal=principal)

    @classmethod
    def failure(cls, error: AuthErrorCode) -> "VerificationResult":
        return cls(error=error)


@dataclass(frozen=True)
class RateLimitPolicy:
    """Budget of ``limit`` requests per fixed window of ``window_seconds``."""
    limit: int
    window_seconds: int

    def __post_init__(self) -> None:
        if isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit < 1:
            raise PolicyConfigurationError(f"limit must be a positive integer, got {self.limit!r}")
        if (
            isinstance(self.window_seconds, bool)
            or not isinstance(self.window_seconds, int)
            or self.window_seconds < 1
        ):
            raise PolicyConfigurationError(
                f"window_seconds must be a positive integer, got {self.window_seconds!r}"
            )


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of a rate limit check."""
    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after: int = 0


class CounterSnapshot(NamedTuple):
    """Post-increment state of a counter."""
    count: int
    ttl_remaining: int
