"""
Bearer token verification.

Resolves a raw credential to a Principal or to a definitive rejection
reason. Rejections are returned as values; only infrastructure failures
(an unreachable session store) raise.
"""

from __future__ import annotations

import json
import time
from typing import Any, Callable

import jwt
from redis.exceptions import RedisError

from admission.app.core.cache import CacheBackend
from admission.app.core.logging import get_logger
from admission.app.exceptions import PolicyConfigurationError
from admission.app.services.models import (
    AuthErrorCode,
    Credential,
    Principal,
    TokenKind,
    VerificationResult,
)
from admission.app.services.principal_directory import PrincipalDirectory, PrincipalRecord
from admission.app.services.session_store import SessionStore

logger = get_logger(__name__)

# Longer credentials are rejected before any decoding work is done
MAX_TOKEN_LENGTH = 4096

# Expiry and issue time are checked against our own clock, not PyJWT's.
_DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_exp": False,
    "verify_iat": False,
    "verify_nbf": False,
    "verify_aud": False,
    "verify_iss": False,
    "require": ["sub", "exp", "iat"],
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class TokenVerifier:
    """Verifies signed JWT credentials and resolves them to principals."""

    CACHE_KEY_PREFIX = "principal"

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        session_store: SessionStore | None = None,
        directory: PrincipalDirectory | None = None,
        cache: CacheBackend | None = None,
        cache_ttl: int = 60,
        leeway: int = 0,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the verifier.

        Args:
            secret: Shared secret the tokens are signed with.
            algorithm: Accepted HMAC algorithm; tokens using any other are rejected.
            session_store: Enables revocation checks for tokens carrying ``sid``.
            directory: Identity store consulted for status and roles.
            cache: Cache for directory lookups.
            cache_ttl: Seconds a directory lookup stays cached.
            leeway: Seconds of clock skew tolerated on expiry.
            clock: Source of the current UNIX time.
        """
        if not secret:
            raise PolicyConfigurationError("JWT secret must be configured")
        if leeway < 0:
            raise PolicyConfigurationError("leeway cannot be negative")

        self._secret = secret
        self.algorithm = algorithm
        self._session_store = session_store
        self._directory = directory
        self._cache = cache
        self._cache_ttl = cache_ttl
        self._leeway = leeway
        self._clock = clock

    async def verify(
        self, raw_token: str, expected_kind: TokenKind = TokenKind.ACCESS
    ) -> VerificationResult:
        """Verify a raw token.

        Checks run in order: structure, signature, expiry, token kind,
        session liveness, principal status. The first failing check decides
        the error code.

        Args:
            raw_token: The encoded JWT, without any ``Bearer`` prefix.
            expected_kind: Token kind the caller accepts.

        Returns:
            VerificationResult holding either a Principal or an AuthErrorCode.

        Raises:
            SessionStoreError: If the session store cannot be queried.
        """
        decoded = self._decode(raw_token)
        if isinstance(decoded, AuthErrorCode):
            return VerificationResult.failure(decoded)
        credential = decoded

        if credential.expires_at + self._leeway <= self._clock():
            return VerificationResult.failure(AuthErrorCode.EXPIRED)

        if credential.kind is not expected_kind:
            return VerificationResult.failure(AuthErrorCode.WRONG_TOKEN_KIND)

        if credential.session_id and self._session_store is not None:
            if not await self._session_store.is_active(credential.session_id):
                return VerificationResult.failure(AuthErrorCode.REVOKED_SESSION)

        return await self._resolve_principal(credential)

    def _decode(self, raw_token: str) -> Credential | AuthErrorCode:
        """Parse and authenticate the token, returning its claims."""
        if not raw_token or not isinstance(raw_token, str):
            return AuthErrorCode.MALFORMED
        if len(raw_token) > MAX_TOKEN_LENGTH:
            return AuthErrorCode.MALFORMED

        try:
            payload = jwt.decode(
                raw_token,
                self._secret,
                algorithms=[self.algorithm],
                options=_DECODE_OPTIONS,
            )
        except (jwt.InvalidSignatureError, jwt.InvalidAlgorithmError) as e:
            logger.warning(f"Token signature verification failed: {type(e).__name__}")
            return AuthErrorCode.INVALID_SIGNATURE
        except jwt.InvalidTokenError:
            return AuthErrorCode.MALFORMED

        subject_id = payload.get("sub")
        expires_at = payload.get("exp")
        issued_at = payload.get("iat")
        if not isinstance(subject_id, str) or not subject_id:
            return AuthErrorCode.MALFORMED
        if not _is_number(expires_at) or not _is_number(issued_at):
            return AuthErrorCode.MALFORMED

        try:
            kind = TokenKind(payload.get("typ", TokenKind.ACCESS.value))
        except ValueError:
            return AuthErrorCode.MALFORMED

        session_id = payload.get("sid")
        if session_id is not None and not isinstance(session_id, str):
            return AuthErrorCode.MALFORMED

        roles = payload.get("roles", [])
        if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
            return AuthErrorCode.MALFORMED

        return Credential(
            subject_id=subject_id,
            issued_at=issued_at,
            expires_at=expires_at,
            kind=kind,
            session_id=session_id,
            roles=frozenset(roles),
        )

    async def _resolve_principal(self, credential: Credential) -> VerificationResult:
        if self._directory is None:
            return VerificationResult.success(
                Principal(
                    subject_id=credential.subject_id,
                    active=True,
                    roles=credential.roles,
                    session_id=credential.session_id,
                )
            )

        record = await self._lookup_record(credential.subject_id)
        if record is None or not record.active:
            return VerificationResult.failure(AuthErrorCode.INACTIVE_PRINCIPAL)

        return VerificationResult.success(
            Principal(
                subject_id=credential.subject_id,
                active=True,
                roles=record.roles,
                session_id=credential.session_id,
            )
        )

    async def _lookup_record(self, subject_id: str) -> PrincipalRecord | None:
        """Look up a subject in the directory, cache-aside."""
        cache_key = f"{self.CACHE_KEY_PREFIX}:{subject_id}"

        # 1. Cache
        if self._cache is not None:
            try:
                cached = await self._cache.get(cache_key)
            except RedisError as e:
                logger.warning(f"Principal cache read failed: {e}. Using directory.")
                cached = None
            if cached is not None:
                record = self._decode_cached(subject_id, cached)
                if record is not None:
                    return record

        # 2. Directory
        record = await self._directory.lookup(subject_id)

        # 3. Populate cache; unknown subjects are not cached
        if record is not None and self._cache is not None:
            value = json.dumps({"active": record.active, "roles": sorted(record.roles)})
            try:
                await self._cache.set(cache_key, value.encode(), self._cache_ttl)
            except RedisError as e:
                logger.warning(f"Principal cache write failed: {e}")

        return record

    @staticmethod
    def _decode_cached(subject_id: str, cached: bytes) -> PrincipalRecord | None:
        """Rebuild a cached record; undecodable entries count as a miss."""
        try:
            data = json.loads(cached)
            return PrincipalRecord(
                subject_id=subject_id,
                active=bool(data["active"]),
                roles=frozenset(data["roles"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring corrupt principal cache entry: {type(e).__name__}")
            return None

    async def invalidate_principal(self, subject_id: str) -> None:
        """Drop a cached directory lookup, e.g. after a role change."""
        if self._cache is not None:
            await self._cache.delete(f"{self.CACHE_KEY_PREFIX}:{subject_id}")
