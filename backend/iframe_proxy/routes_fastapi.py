"""
Iframe Proxy API Routes

Provides endpoints for:
- Proxying legacy HTML documents for sandboxed embedding
- Cache statistics
- Cache management (cleanup, clear)
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response, JSONResponse

from .orchestrator import IframeProxy, ProxyError

logger = logging.getLogger(__name__)

# ============================================
# Response headers
# ============================================

PROXY_RESPONSE_HEADERS = {
    "Content-Disposition": "inline",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Content-Security-Policy": "frame-ancestors 'self'",
    "Cache-Control": "public, max-age=300, stale-while-revalidate=60",
}

HTML_MEDIA_TYPE = "text/html; charset=utf-8"

# ============================================
# Router
# ============================================

router = APIRouter(prefix="/api/iframe-proxy", tags=["Iframe Proxy"])


def get_iframe_proxy(request: Request) -> IframeProxy:
    """The process-wide proxy built by create_app()."""
    return request.app.state.iframe_proxy


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# ============================================
# Endpoints
# ============================================

@router.get("")
@router.get("/")
async def proxy_document(
    url: Optional[str] = Query(None, description="URL of the HTML document to proxy"),
    nocache: Optional[str] = Query(None, description='"1" forces a fresh fetch'),
    proxy: IframeProxy = Depends(get_iframe_proxy),
):
    """
    Proxy a legacy HTML document for embedding in a sandboxed iframe.

    This endpoint:
    1. Rejects URLs outside the asset-store allowlist
    2. Serves a cached copy when fresh (unless nocache=1)
    3. Otherwise fetches, transforms and caches the document
    4. Returns it as HTML only embeddable by this application

    Example:
        GET /api/iframe-proxy?url=https://res.cloudinary.com/demo/raw/upload/lesson.html
    """
    try:
        document = await proxy.fetch_document(url, nocache=nocache == "1")
    except ProxyError as e:
        return error_response(e.status_code, e.message)
    except Exception as e:
        logger.exception(f"[IframeProxy] Unexpected failure: {e}")
        return error_response(502, str(e) or "Failed to fetch document")

    return Response(
        content=document.html,
        status_code=200,
        media_type=HTML_MEDIA_TYPE,
        headers={**PROXY_RESPONSE_HEADERS, "X-Cache": document.cache_status},
    )


@router.get("/stats")
async def get_cache_stats(proxy: IframeProxy = Depends(get_iframe_proxy)):
    """
    Get cache statistics.

    Returns information about:
    - Total and fresh cached documents
    - Cache size usage
    - Configuration
    """
    return JSONResponse(content={
        "success": True,
        "stats": proxy.cache.stats(),
        "entries": [e.to_summary() for e in proxy.cache.list_all()],
    })


@router.post("/cleanup")
async def cleanup_cache(proxy: IframeProxy = Depends(get_iframe_proxy)):
    """
    Remove stale cache entries.

    Stale entries are already treated as misses; this only frees memory.
    """
    removed = proxy.cache.cleanup_expired()
    return JSONResponse(content={
        "success": True,
        "removed_entries": removed,
        "current_stats": proxy.cache.stats(),
    })


@router.delete("/clear")
async def clear_cache(proxy: IframeProxy = Depends(get_iframe_proxy)):
    """Clear all cached documents."""
    removed = proxy.cache.clear()
    return JSONResponse(content={
        "success": True,
        "removed_entries": removed,
        "message": "Cache cleared successfully",
    })


@router.get("/health")
async def health_check(proxy: IframeProxy = Depends(get_iframe_proxy)):
    """Health check endpoint."""
    return JSONResponse(content={
        "status": "healthy",
        "service": "iframe-proxy",
        "allowed_hosts": sorted(proxy.allowlist.hosts),
        "cache_stats": proxy.cache.stats(),
    })
