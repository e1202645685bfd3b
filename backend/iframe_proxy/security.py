"""
Iframe Proxy URL Validation

Decides whether a requested URL may be proxied at all. This is the only
check standing between the proxy endpoint and an open relay, so it runs
before any cache lookup or outbound request.
"""

from typing import Iterable
from urllib.parse import urlsplit, urlunsplit, SplitResult

ALLOWED_SCHEMES = ("http", "https")


class InvalidUrlError(ValueError):
    """Raised when a string is not an absolute http(s) URL."""


def parse_target(url: str) -> SplitResult:
    """
    Parse an absolute URL.

    Raises:
        InvalidUrlError: if the URL does not parse, or has no scheme or host
    """
    try:
        parts = urlsplit(url.strip())
        # Accessing hostname/port validates brackets and port digits
        host = parts.hostname
        parts.port
    except ValueError as e:
        raise InvalidUrlError(f"Invalid URL: {e}") from e

    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        raise InvalidUrlError("Invalid URL scheme")
    if not host:
        raise InvalidUrlError("Invalid URL host")
    return parts


def canonical_url(parts: SplitResult) -> str:
    """
    Canonical form used as cache key and fetch target.

    Scheme and host are lowercased, an empty path becomes ``/``, the query
    string is kept verbatim and the fragment is dropped.
    """
    return urlunsplit((
        parts.scheme.lower(),
        parts.netloc.lower(),
        parts.path or "/",
        parts.query,
        "",
    ))


class UrlAllowlist:
    """
    Host and path allowlist for proxyable documents.

    A URL is proxyable when its host is one of ``hosts`` and its path
    contains ``path_marker``. The marker restricts the proxy to one
    resource class on the host (raw uploads) so images or videos on the
    same host are never served as HTML.
    """

    def __init__(self, hosts: Iterable[str], path_marker: str):
        self.hosts = frozenset(h.lower() for h in hosts)
        self.path_marker = path_marker

    def allows(self, parts: SplitResult) -> bool:
        """Rule check on an already parsed URL"""
        host = (parts.hostname or "").lower()
        return host in self.hosts and self.path_marker in parts.path

    def is_proxyable(self, url: str) -> bool:
        """True when ``url`` parses and matches the allowlist."""
        if not url:
            return False
        try:
            parts = parse_target(url)
        except InvalidUrlError:
            return False
        return self.allows(parts)

    def __repr__(self) -> str:
        return f"UrlAllowlist(hosts={sorted(self.hosts)!r}, path_marker={self.path_marker!r})"
