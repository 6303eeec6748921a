import secrets
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import redis.asyncio as aioredis
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from admission.app.core.cache import CacheBackend, InMemoryCache, RedisCache
from admission.app.core.config import Settings, settings
from admission.app.core.logging import get_logger, setup_logging
from admission.app.exceptions import AdmissionException
from admission.app.middleware.admission import AdmissionMiddleware
from admission.app.middleware.auth import require_principal
from admission.app.middleware.request_id import RequestIdMiddleware, get_request_id
from admission.app.services.admission import AdmissionGate
from admission.app.services.counter_store import (
    CounterStore,
    InMemoryCounterStore,
    RedisCounterStore,
)
from admission.app.services.models import Principal, RateLimitPolicy
from admission.app.services.principal_directory import PrincipalDirectory
from admission.app.services.rate_limiter import RateLimiter
from admission.app.services.session_store import (
    InMemorySessionStore,
    RedisSessionStore,
    SessionStore,
)
from admission.app.services.token_verifier import TokenVerifier

logger = get_logger(__name__)


def resolve_jwt_secret(app_settings: Settings) -> str:
    """Return the configured JWT secret, or a random per-process one."""
    if app_settings.jwt_secret:
        return app_settings.jwt_secret
    # WARNING: tokens signed with a random secret do not survive restarts
    # and are not shared between instances. Always set JWT_SECRET.
    logger.warning("JWT_SECRET is not set; using a random per-process secret")
    return secrets.token_urlsafe(48)


def build_gate(
    app_settings: Settings,
    redis_client: Optional[Any] = None,
    directory: Optional[PrincipalDirectory] = None,
) -> tuple[AdmissionGate, CounterStore]:
    """Wire stores, verifier and limiter from settings.

    Principal lookups (and their cache) are only enabled when a
    ``directory`` is given; otherwise roles come from the token.

    Returns:
        The gate and the counter store it uses (for health checks).
    """
    counter_store: CounterStore
    session_store: SessionStore
    if redis_client is not None:
        timeout = app_settings.redis_timeout_seconds
        counter_store = RedisCounterStore(redis_client=redis_client, timeout=timeout)
        session_store = RedisSessionStore(redis_client=redis_client, timeout=timeout)
        logger.info("Using Redis admission stores")
    else:
        counter_store = InMemoryCounterStore()
        session_store = InMemorySessionStore()
        logger.debug("Using in-memory admission stores")

    cache: Optional[CacheBackend] = None
    if directory is not None and redis_client is not None:
        cache = RedisCache(redis_client=redis_client)
    elif directory is not None:
        cache = InMemoryCache()

    verifier = TokenVerifier(
        secret=resolve_jwt_secret(app_settings),
        algorithm=app_settings.jwt_algorithm,
        session_store=session_store if app_settings.session_check_enabled else None,
        directory=directory,
        cache=cache,
        cache_ttl=app_settings.principal_cache_ttl,
        leeway=app_settings.jwt_leeway_seconds,
    )
    window = app_settings.rate_limit_window_seconds
    user_policy = RateLimitPolicy(app_settings.rate_limit_user_limit, window)
    limiter = RateLimiter(
        counter_store,
        default_policy=user_policy,
        key_prefix=app_settings.rate_limit_key_prefix,
    )
    gate = AdmissionGate(
        verifier,
        limiter,
        user_policy=user_policy,
        anonymous_policy=RateLimitPolicy(app_settings.rate_limit_anonymous_limit, window),
        require_auth=app_settings.admission_require_auth,
        fail_closed=app_settings.rate_limit_fail_closed,
    )
    return gate, counter_store


def create_app(
    app_settings: Optional[Settings] = None,
    gate: Optional[AdmissionGate] = None,
    counter_store: Optional[CounterStore] = None,
    directory: Optional[PrincipalDirectory] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        app_settings: Settings override, defaults to the global settings
        gate: Pre-built admission gate (tests inject one with fake stores)
        counter_store: Counter store checked by /health when ``gate`` is given
        directory: Identity store for principal status and roles

    Returns:
        Configured FastAPI application instance
    """
    app_settings = app_settings or settings
    setup_logging()

    redis_client = None
    if gate is None:
        if app_settings.redis_enabled:
            redis_client = aioredis.from_url(
                app_settings.redis_url, socket_timeout=app_settings.redis_timeout_seconds
            )
        gate, counter_store = build_gate(app_settings, redis_client, directory)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(
            "Application startup complete",
            extra={
                "redis_enabled": redis_client is not None,
                "require_auth": gate.require_auth,
                "fail_closed": gate.fail_closed,
            },
        )
        yield
        if redis_client is not None:
            await redis_client.aclose()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Admission Gate",
        description="Bearer token verification and fixed-window rate limiting",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.gate = gate

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(
        AdmissionMiddleware,
        gate=gate,
        exempt_paths=app_settings.admission_exempt_paths,
        cookie_name=app_settings.admission_cookie_name,
        trust_forwarded_for=app_settings.admission_trust_forwarded_for,
    )
    # Request ID middleware (outermost, so rejections are tagged too)
    app.add_middleware(RequestIdMiddleware)

    @app.get("/health")
    async def health() -> JSONResponse:
        """Health check including counter store reachability."""
        store_ok = True
        if counter_store is not None:
            store_ok = await counter_store.ping()
        body = {
            "status": "ok" if store_ok else "degraded",
            "components": {"counter_store": {"status": "ok" if store_ok else "error"}},
        }
        return JSONResponse(status_code=200 if store_ok else 503, content=body)

    @app.get("/v1/whoami")
    async def whoami(principal: Principal = Depends(require_principal)) -> dict[str, Any]:
        """Return the principal admitted for this request."""
        return {
            "subject_id": principal.subject_id,
            "active": principal.active,
            "roles": sorted(principal.roles),
            "session_id": principal.session_id,
        }

    @app.exception_handler(AdmissionException)
    async def admission_error_handler(request: Request, exc: AdmissionException) -> JSONResponse:
        """Handle AdmissionException subclasses with their status code."""
        logger.warning(
            f"{type(exc).__name__}: {exc.message}",
            extra={"request_id": get_request_id(request)},
        )
        headers = {"WWW-Authenticate": 'Bearer realm="api"'} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.error_code, "message": exc.public_message},
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Never returns a traceback to the client; full details are logged.
        """
        request_id = get_request_id(request)
        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={"request_id": request_id, "exception_type": type(exc).__name__},
        )
        content = {
            "error": "internal_error",
            "message": "Internal server error",
            "request_id": request_id,
        }
        if app_settings.debug:
            content["message"] = str(exc)
            content["exception_type"] = type(exc).__name__
        return JSONResponse(status_code=500, content=content)

    return app


# Create the application instance
app = create_app()
