"""
Iframe Proxy Module

Re-serves legacy HTML documents from the trusted asset store so they can be
embedded in a sandboxed iframe on our own origin.

Features:
- Host/path allowlist (never an open relay)
- In-memory document cache with TTL and batch eviction
- Document rewriting (base href, viewport, legacy error guard)
"""

from .config import ProxyConfig
from .security import UrlAllowlist, InvalidUrlError, parse_target, canonical_url
from .transform import prepare_html, get_base_href
from .orchestrator import IframeProxy, ProxiedDocument, ProxyError
from .routes_fastapi import router

__all__ = [
    "router",
    "ProxyConfig",
    "UrlAllowlist",
    "InvalidUrlError",
    "parse_target",
    "canonical_url",
    "prepare_html",
    "get_base_href",
    "IframeProxy",
    "ProxiedDocument",
    "ProxyError",
]
