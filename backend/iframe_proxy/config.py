"""
Iframe Proxy Configuration

All settings come from environment variables, with defaults matching the
production asset store.
"""

import os
from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Mapping


def _split_hosts(raw: str) -> FrozenSet[str]:
    return frozenset(h.strip().lower() for h in raw.split(",") if h.strip())


@dataclass(frozen=True)
class ProxyConfig:
    """Configuration for the iframe proxy and its cache."""
    # Security
    allowed_hosts: FrozenSet[str] = field(
        default_factory=lambda: frozenset({"res.cloudinary.com"})
    )
    path_marker: str = "/raw/upload/"   # Only raw uploads are served as HTML

    # Cache settings
    cache_ttl_seconds: float = 300.0
    cache_max_entries: int = 100
    cache_target_entries: int = 50

    # Fetch settings
    fetch_timeout: float = 15.0
    max_document_mb: int = 10

    # Collaborators
    lessons_api_url: str = "http://localhost:3556/api"
    lessons_api_token: Optional[str] = None

    @property
    def max_document_bytes(self) -> int:
        return self.max_document_mb * 1024 * 1024

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ProxyConfig":
        """Build a config from ``os.environ`` (or the given mapping)."""
        env = os.environ if environ is None else environ
        return cls(
            allowed_hosts=_split_hosts(
                env.get("IFRAME_PROXY_ALLOWED_HOSTS", "res.cloudinary.com")
            ),
            path_marker=env.get("IFRAME_PROXY_PATH_MARKER", "/raw/upload/"),
            cache_ttl_seconds=float(env.get("IFRAME_PROXY_CACHE_TTL_SECONDS", "300")),
            cache_max_entries=int(env.get("IFRAME_PROXY_CACHE_MAX_ENTRIES", "100")),
            cache_target_entries=int(env.get("IFRAME_PROXY_CACHE_TARGET_ENTRIES", "50")),
            fetch_timeout=float(env.get("IFRAME_PROXY_FETCH_TIMEOUT_SECONDS", "15")),
            max_document_mb=int(env.get("IFRAME_PROXY_MAX_DOCUMENT_MB", "10")),
            lessons_api_url=env.get("LESSONS_API_URL", "http://localhost:3556/api"),
            lessons_api_token=env.get("LESSONS_API_TOKEN") or None,
        )
