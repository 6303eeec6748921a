import json
import re
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

_HMAC_ALGORITHMS = ("HS256", "HS384", "HS512")


def _parse_path_list(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []

    # Prefer JSON, but tolerate comma separated values from plain env vars.
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]

    paths: list[str] = []
    for part in re.split(r"[,\s]+", raw):
        if not part:
            continue
        if not part.startswith("/"):
            part = f"/{part}"
        if part not in paths:
            paths.append(part)
    return paths


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # JWT settings
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    jwt_access_ttl: int = 900  # 15 minutes
    jwt_refresh_ttl: int = 86400  # 1 day
    jwt_leeway_seconds: int = 0

    # Session revocation
    session_check_enabled: bool = True
    session_ttl: int = 86400

    # Principal lookup cache
    principal_cache_ttl: int = 60

    # Rate limiting settings (fixed windows)
    rate_limit_window_seconds: int = 60
    rate_limit_user_limit: int = 60
    rate_limit_anonymous_limit: int = 20
    rate_limit_fail_closed: bool = (
        False  # If True, deny requests when the counter store is unavailable
    )
    rate_limit_key_prefix: str = "ratelimit"

    # Admission settings
    admission_require_auth: bool = True
    admission_exempt_paths: Annotated[list[str], NoDecode] = ["/health"]
    admission_trust_forwarded_for: bool = True
    admission_cookie_name: str = "access_token"

    # Redis settings (optional)
    redis_enabled: bool = False
    redis_url: str = "redis://localhost:6379/0"
    redis_timeout_seconds: float = 0.5  # Bound on every store round-trip

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    @field_validator("admission_exempt_paths", mode="before")
    @classmethod
    def decode_exempt_paths(cls, v: Any) -> list[str]:
        return _parse_path_list(v)

    @field_validator(
        "rate_limit_window_seconds",
        "rate_limit_user_limit",
        "rate_limit_anonymous_limit",
    )
    @classmethod
    def validate_rate_limit_positive(cls, v: int) -> int:
        """Validate rate limit values are positive."""
        if v < 1:
            raise ValueError("Rate limit values must be at least 1")
        return v

    @field_validator("jwt_access_ttl", "jwt_refresh_ttl", "session_ttl", "principal_cache_ttl")
    @classmethod
    def validate_ttl_positive(cls, v: int) -> int:
        """Validate TTL values are positive."""
        if v < 1:
            raise ValueError("TTL values must be at least 1 second")
        return v

    @field_validator("jwt_leeway_seconds")
    @classmethod
    def validate_leeway(cls, v: int) -> int:
        if v < 0:
            raise ValueError("jwt_leeway_seconds cannot be negative")
        return v

    @field_validator("jwt_algorithm")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """Only shared-secret algorithms are supported."""
        v = v.strip().upper()
        if v not in _HMAC_ALGORITHMS:
            raise ValueError(f"jwt_algorithm must be one of {', '.join(_HMAC_ALGORITHMS)}")
        return v

    @field_validator("redis_timeout_seconds")
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
