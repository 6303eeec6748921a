"""Core utilities for the admission gate."""

from admission.app.core.cache import CacheBackend, InMemoryCache, RedisCache
from admission.app.core.config import settings
from admission.app.core.logging import get_logger, setup_logging

__all__ = [
    "CacheBackend",
    "InMemoryCache",
    "RedisCache",
    "settings",
    "get_logger",
    "setup_logging",
]
