"""
Proxy Cache Module

Provides the time-bounded in-memory store for proxied HTML documents.
"""

from .memory_store import (
    CachedDocument,
    DocumentCache,
    DEFAULT_TTL_SECONDS,
    DEFAULT_MAX_ENTRIES,
    DEFAULT_TARGET_ENTRIES,
)

__all__ = [
    "CachedDocument",
    "DocumentCache",
    "DEFAULT_TTL_SECONDS",
    "DEFAULT_MAX_ENTRIES",
    "DEFAULT_TARGET_ENTRIES",
]
