"""
Token issuance for access and refresh credentials.

Access tokens are short-lived; refresh tokens are long-lived. Both may be
bound to a session id so that revoking the session invalidates them.
"""

from __future__ import annotations

import secrets
import time
import uuid
from typing import Callable, Iterable

import jwt

from admission.app.exceptions import PolicyConfigurationError
from admission.app.services.models import TokenKind
from admission.app.services.session_store import SessionStore


class TokenIssuer:
    """Service for signing access and refresh tokens."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        access_ttl: int = 900,
        refresh_ttl: int = 86400,
        session_store: SessionStore | None = None,
        session_ttl: int = 86400,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the token issuer.

        Args:
            secret: JWT signing secret.
            algorithm: HMAC algorithm used to sign tokens.
            access_ttl: Access token lifetime in seconds.
            refresh_ttl: Refresh token lifetime in seconds.
            session_store: Store used by open_session / revoke_session.
            session_ttl: Session lifetime in seconds.
            clock: Source of the current UNIX time.
        """
        if not secret:
            raise PolicyConfigurationError("JWT secret must be configured")
        if access_ttl < 1 or refresh_ttl < 1:
            raise PolicyConfigurationError("Token TTLs must be positive")

        self._secret = secret
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._session_store = session_store
        self.session_ttl = session_ttl
        self._clock = clock

    def _encode(
        self,
        subject_id: str,
        kind: TokenKind,
        ttl: int,
        session_id: str | None = None,
        roles: Iterable[str] | None = None,
    ) -> str:
        now = int(self._clock())
        payload: dict = {
            "sub": subject_id,
            "typ": kind.value,
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": now + ttl,
        }
        if session_id:
            payload["sid"] = session_id
        if roles:
            payload["roles"] = sorted(set(roles))
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def issue_access_token(
        self,
        subject_id: str,
        roles: Iterable[str] | None = None,
        session_id: str | None = None,
        ttl: int | None = None,
    ) -> str:
        """Create a short-lived access token.

        Args:
            subject_id: The subject the token asserts.
            roles: Role names embedded in the token.
            session_id: Session the token is bound to.
            ttl: Lifetime override in seconds.

        Returns:
            Encoded JWT string.
        """
        return self._encode(
            subject_id, TokenKind.ACCESS, ttl or self.access_ttl, session_id, roles
        )

    def issue_refresh_token(
        self, subject_id: str, session_id: str | None = None, ttl: int | None = None
    ) -> str:
        """Create a long-lived refresh token."""
        return self._encode(subject_id, TokenKind.REFRESH, ttl or self.refresh_ttl, session_id)

    async def open_session(self, subject_id: str) -> str:
        """Create a live session for ``subject_id`` and return its id."""
        if self._session_store is None:
            raise PolicyConfigurationError("No session store configured")
        session_id = secrets.token_urlsafe(16)
        await self._session_store.create(session_id, subject_id, self.session_ttl)
        return session_id

    async def revoke_session(self, session_id: str) -> bool:
        """Revoke a session, invalidating every token bound to it."""
        if self._session_store is None:
            raise PolicyConfigurationError("No session store configured")
        return await self._session_store.revoke(session_id)
