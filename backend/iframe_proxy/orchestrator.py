"""
Iframe Proxy Orchestrator

Request flow:
1. Validate the URL against the allowlist (400 / 403 on failure)
2. Look the canonical URL up in the document cache (unless bypassed)
3. On a miss, fetch the document with a hard timeout
4. Transform it for embedding and store it in the cache

Every failure is raised as ProxyError carrying the HTTP status the route
should answer with.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from proxy_cache import DocumentCache
from .security import UrlAllowlist, InvalidUrlError, parse_target, canonical_url
from .transform import get_base_href, prepare_html

logger = logging.getLogger(__name__)

CACHE_HIT = "HIT"
CACHE_MISS = "MISS"
CACHE_BYPASS = "BYPASS"

# Upstream fetches never reuse intermediate caches
FETCH_HEADERS = {
    "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


class ProxyError(Exception):
    """A proxy failure and the status code it maps to."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}

    def __repr__(self) -> str:
        return f"ProxyError({self.status_code}, {self.message!r})"


@dataclass(frozen=True)
class ProxiedDocument:
    """Result of a successful proxy request."""
    url: str
    html: str
    cache_status: str


class IframeProxy:
    """
    Validates, caches, fetches and transforms remote HTML documents.

    Usage:
        proxy = IframeProxy(cache, allowlist, http_client)
        document = await proxy.fetch_document(url, nocache=False)
    """

    def __init__(
        self,
        cache: DocumentCache,
        allowlist: UrlAllowlist,
        http_client: httpx.AsyncClient,
        fetch_timeout: float = 15.0,
        max_document_bytes: int = 10 * 1024 * 1024,
    ):
        self.cache = cache
        self.allowlist = allowlist
        self.http_client = http_client
        self.fetch_timeout = fetch_timeout
        self.max_document_bytes = max_document_bytes

    async def fetch_document(
        self,
        url: Optional[str],
        nocache: bool = False,
    ) -> ProxiedDocument:
        """
        Serve the embeddable version of ``url``.

        Raises:
            ProxyError: on validation, upstream or transport failure
        """
        if not url or not url.strip():
            raise ProxyError(400, "Missing url")

        try:
            parts = parse_target(url)
        except InvalidUrlError:
            raise ProxyError(400, "Invalid url") from None

        if not self.allowlist.allows(parts):
            logger.warning(f"[IframeProxy] Rejected: {url[:80]}")
            raise ProxyError(403, "URL not allowed")

        key = canonical_url(parts)

        cached = self._cache_get(key, bypass=nocache)
        if cached is not None:
            logger.debug(f"[IframeProxy] Cache hit: {key[:60]}...")
            return ProxiedDocument(url=key, html=cached, cache_status=CACHE_HIT)

        raw_html = await self._fetch(key, parts.hostname or "upstream")
        html = prepare_html(raw_html, get_base_href(parse_target(key)))
        self._cache_put(key, html)

        logger.info(f"[IframeProxy] Proxied: {key[:60]}... ({len(html)} chars)")
        return ProxiedDocument(
            url=key,
            html=html,
            cache_status=CACHE_BYPASS if nocache else CACHE_MISS,
        )

    async def _fetch(self, url: str, upstream_name: str) -> str:
        """Download ``url`` within ``fetch_timeout``, covering headers and body."""
        try:
            logger.info(f"[IframeProxy] Fetching: {url[:80]}...")
            return await asyncio.wait_for(
                self._download(url, upstream_name),
                timeout=self.fetch_timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.error(f"[IframeProxy] Timeout: {url[:60]}...")
            raise ProxyError(
                502, f"Upstream request timed out after {self.fetch_timeout:g}s"
            )
        except httpx.InvalidURL as e:
            logger.warning(f"[IframeProxy] Rejected by HTTP client: {e}")
            raise ProxyError(400, "Invalid url") from None
        except httpx.HTTPError as e:
            logger.error(f"[IframeProxy] Fetch error: {e}")
            raise ProxyError(502, str(e) or e.__class__.__name__)

    async def _download(self, url: str, upstream_name: str) -> str:
        async with self.http_client.stream("GET", url, headers=FETCH_HEADERS) as response:
            if not response.is_success:
                logger.error(f"[IframeProxy] HTTP error {response.status_code}: {url[:60]}...")
                raise ProxyError(
                    response.status_code,
                    f"{upstream_name} responded with {response.status_code}",
                )

            declared = response.headers.get("Content-Length", "")
            if declared.isdigit() and int(declared) > self.max_document_bytes:
                raise self._too_large()

            chunks = []
            received = 0
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                # Stop reading as soon as the cap is passed
                if received > self.max_document_bytes:
                    raise self._too_large()
                chunks.append(chunk)

        return b"".join(chunks).decode(response.encoding or "utf-8", errors="replace")

    def _too_large(self) -> ProxyError:
        return ProxyError(
            413,
            f"Document too large (max {self.max_document_bytes // (1024 * 1024)}MB)",
        )

    def _cache_get(self, key: str, bypass: bool) -> Optional[str]:
        try:
            entry = self.cache.get(key, bypass=bypass)
        except Exception as e:
            logger.warning(f"[IframeProxy] Cache lookup failed, treating as miss: {e}")
            return None
        return entry.html if entry is not None else None

    def _cache_put(self, key: str, html: str) -> None:
        try:
            self.cache.put(key, html)
        except Exception as e:
            logger.warning(f"[IframeProxy] Cache store failed: {e}")
