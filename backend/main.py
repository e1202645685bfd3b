"""
Lesson Content Service

FastAPI application serving the iframe proxy for legacy lesson documents
and the content block rendering endpoints.

Run:
    cd backend
    python main.py
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI

from iframe_proxy import IframeProxy, ProxyConfig, UrlAllowlist, router as iframe_proxy_router
from lessons import ContentBlockRenderer, LessonsApiClient, router as lessons_router
from proxy_cache import DocumentCache

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    config: Optional[ProxyConfig] = None,
    *,
    cache: Optional[DocumentCache] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    lessons_client: Optional[LessonsApiClient] = None,
) -> FastAPI:
    """
    Return a configured FastAPI application.

    The document cache is created once here and shared by every request.
    Passing ``cache``, ``http_client`` or ``lessons_client`` replaces the
    default instance (tests inject fakes this way).
    """
    config = config or ProxyConfig.from_env()

    if cache is None:
        cache = DocumentCache(
            ttl_seconds=config.cache_ttl_seconds,
            max_entries=config.cache_max_entries,
            target_entries=config.cache_target_entries,
        )
    allowlist = UrlAllowlist(config.allowed_hosts, config.path_marker)

    owned_clients = []
    if http_client is None:
        # No redirects: a redirect could leave the allowlist
        http_client = httpx.AsyncClient(timeout=config.fetch_timeout, follow_redirects=False)
        owned_clients.append(http_client)
    if lessons_client is None:
        lessons_client = LessonsApiClient(
            config.lessons_api_url, token=config.lessons_api_token
        )
        owned_clients.append(lessons_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            f"[App] Iframe proxy allowlist: {sorted(allowlist.hosts)} "
            f"(path marker {allowlist.path_marker!r})"
        )
        yield
        for client in owned_clients:
            if isinstance(client, httpx.AsyncClient):
                await client.aclose()
            else:
                await client.close()

    app = FastAPI(
        title="Lesson Content Service",
        description="Legacy content proxy and lesson block rendering",
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.iframe_proxy = IframeProxy(
        cache=cache,
        allowlist=allowlist,
        http_client=http_client,
        fetch_timeout=config.fetch_timeout,
        max_document_bytes=config.max_document_bytes,
    )
    app.state.block_renderer = ContentBlockRenderer(
        allowlist, proxy_path=iframe_proxy_router.prefix
    )
    app.state.lessons_client = lessons_client

    app.include_router(iframe_proxy_router)
    app.include_router(lessons_router)
    return app


if __name__ == "__main__":
    import uvicorn

    configure_logging()
    uvicorn.run(
        create_app(),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
