"""
Iframe proxy tests

Covers the orchestrator state machine and the HTTP endpoint.

Run:
    cd backend
    pytest tests/test_iframe_proxy.py -v
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from iframe_proxy import IframeProxy, ProxyConfig, ProxyError
from main import create_app

from conftest import LESSON_URL, assert_error_response


# ============================================
# 1. Orchestrator
# ============================================

class TestValidation:
    """Requests rejected before any fetch"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", [None, "", "   "])
    async def test_missing_url(self, proxy, upstream, url):
        with pytest.raises(ProxyError) as exc:
            await proxy.fetch_document(url)
        assert exc.value.status_code == 400
        assert exc.value.message == "Missing url"
        assert upstream.call_count == 0

    @pytest.mark.asyncio
    async def test_invalid_url(self, proxy, upstream):
        with pytest.raises(ProxyError) as exc:
            await proxy.fetch_document("not-a-url")
        assert exc.value.status_code == 400
        assert exc.value.message == "Invalid url"
        assert upstream.call_count == 0

    @pytest.mark.asyncio
    async def test_disallowed_url_never_touches_cache(self, proxy, cache, upstream):
        url = "https://evil.example.com/raw/upload/x.html"
        cache.put(url, "<p>poisoned</p>")
        with pytest.raises(ProxyError) as exc:
            await proxy.fetch_document(url)
        assert exc.value.status_code == 403
        assert exc.value.message == "URL not allowed"
        assert upstream.call_count == 0


class TestCaching:
    """Cache lookup, store and bypass"""

    @pytest.mark.asyncio
    async def test_miss_then_hit(self, proxy, upstream):
        first = await proxy.fetch_document(LESSON_URL)
        second = await proxy.fetch_document(LESSON_URL)

        assert first.cache_status == "MISS"
        assert second.cache_status == "HIT"
        assert first.html == second.html
        assert upstream.call_count == 1

    @pytest.mark.asyncio
    async def test_stale_entry_refetched(self, proxy, upstream, clock):
        await proxy.fetch_document(LESSON_URL)
        clock.advance(300)
        result = await proxy.fetch_document(LESSON_URL)
        assert result.cache_status == "MISS"
        assert upstream.call_count == 2

    @pytest.mark.asyncio
    async def test_nocache_fetches_and_refreshes_entry(self, proxy, upstream, cache):
        await proxy.fetch_document(LESSON_URL)
        upstream.documents[LESSON_URL] = "<html><head></head><body>v2</body></html>"

        result = await proxy.fetch_document(LESSON_URL, nocache=True)

        assert result.cache_status == "BYPASS"
        assert "v2" in result.html
        assert upstream.call_count == 2
        assert "v2" in cache.get(LESSON_URL).html

    @pytest.mark.asyncio
    async def test_fragment_and_host_case_share_cache_entry(self, proxy, upstream):
        await proxy.fetch_document(LESSON_URL)
        result = await proxy.fetch_document(
            "https://RES.cloudinary.com/demo/raw/upload/lesson.html#top"
        )
        assert result.cache_status == "HIT"
        assert upstream.call_count == 1

    @pytest.mark.asyncio
    async def test_cache_failure_degrades_to_miss(self, proxy, upstream, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("cache down")

        monkeypatch.setattr(proxy.cache, "get", broken)
        monkeypatch.setattr(proxy.cache, "put", broken)

        result = await proxy.fetch_document(LESSON_URL)
        assert result.cache_status == "MISS"
        assert "<base href=" in result.html


class TestFetching:
    """Upstream and transport failures"""

    @pytest.mark.asyncio
    async def test_fetch_disables_transport_caching(self, proxy, upstream):
        await proxy.fetch_document(LESSON_URL)
        request = upstream.requests[0]
        assert request.headers["Cache-Control"] == "no-cache"
        assert str(request.url) == LESSON_URL

    @pytest.mark.asyncio
    async def test_transformed_with_document_directory(self, proxy):
        result = await proxy.fetch_document(LESSON_URL)
        assert '<base href="https://res.cloudinary.com/demo/raw/upload/">' in result.html
        assert 'name="viewport"' in result.html
        assert "data-legacy-error-guard" in result.html

    @pytest.mark.asyncio
    async def test_upstream_status_propagated(self, proxy, upstream, cache):
        upstream.status = 404
        with pytest.raises(ProxyError) as exc:
            await proxy.fetch_document(LESSON_URL)
        assert exc.value.status_code == 404
        assert exc.value.message == "res.cloudinary.com responded with 404"
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_connection_error_is_bad_gateway(self, proxy, upstream):
        upstream.error = httpx.ConnectError("Connection refused")
        with pytest.raises(ProxyError) as exc:
            await proxy.fetch_document(LESSON_URL)
        assert exc.value.status_code == 502
        assert exc.value.message == "Connection refused"

    @pytest.mark.asyncio
    async def test_transport_timeout_is_bad_gateway(self, proxy, upstream):
        upstream.error = httpx.ReadTimeout("read timed out")
        with pytest.raises(ProxyError) as exc:
            await proxy.fetch_document(LESSON_URL)
        assert exc.value.status_code == 502
        assert "timed out" in exc.value.message

    @pytest.mark.asyncio
    async def test_hard_timeout_cancels_fetch(self, cache, allowlist, http_client, upstream):
        upstream.delay = 5.0
        proxy = IframeProxy(cache, allowlist, http_client, fetch_timeout=0.05)
        with pytest.raises(ProxyError) as exc:
            await proxy.fetch_document(LESSON_URL)
        assert exc.value.status_code == 502
        assert exc.value.message == "Upstream request timed out after 0.05s"
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_oversized_document_rejected(self, cache, allowlist, http_client, upstream):
        upstream.documents[LESSON_URL] = "x" * 2048
        proxy = IframeProxy(cache, allowlist, http_client, max_document_bytes=1024)
        with pytest.raises(ProxyError) as exc:
            await proxy.fetch_document(LESSON_URL)
        assert exc.value.status_code == 413

    @pytest.mark.asyncio
    async def test_oversized_stream_stops_reading_early(self, cache, allowlist):
        sent = []

        async def endless_body():
            for _ in range(1000):
                sent.append(1024)
                yield b"x" * 1024

        async def handler(request):
            return httpx.Response(200, content=endless_body())

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        proxy = IframeProxy(cache, allowlist, client, max_document_bytes=4096)
        with pytest.raises(ProxyError) as exc:
            await proxy.fetch_document(LESSON_URL)
        assert exc.value.status_code == 413
        assert sum(sent) <= 8 * 1024
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_url_rejected_by_http_client_is_invalid(self, proxy, upstream):
        with pytest.raises(ProxyError) as exc:
            await proxy.fetch_document("https://res.cloudinary.com/demo/raw/upload/a\x01b.html")
        assert exc.value.status_code == 400
        assert exc.value.message == "Invalid url"
        assert upstream.call_count == 0

    @pytest.mark.asyncio
    async def test_slow_upstream_within_timeout_succeeds(self, cache, allowlist, http_client, upstream):
        upstream.delay = 0.2
        proxy = IframeProxy(cache, allowlist, http_client, fetch_timeout=2.0)
        result = await proxy.fetch_document(LESSON_URL)
        assert result.cache_status == "MISS"


# ============================================
# 2. HTTP endpoint
# ============================================

@pytest.fixture
def client(config, cache, http_client):
    app = create_app(config, cache=cache, http_client=http_client)
    return TestClient(app)


class TestProxyEndpoint:
    """GET /api/iframe-proxy"""

    def test_success_headers(self, client):
        response = client.get("/api/iframe-proxy", params={"url": LESSON_URL})

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/html; charset=utf-8"
        assert response.headers["content-disposition"] == "inline"
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-frame-options"] == "SAMEORIGIN"
        assert response.headers["content-security-policy"] == "frame-ancestors 'self'"
        assert response.headers["cache-control"] == "public, max-age=300, stale-while-revalidate=60"
        assert response.headers["x-cache"] == "MISS"

    def test_second_request_is_cache_hit(self, client):
        client.get("/api/iframe-proxy", params={"url": LESSON_URL})
        response = client.get("/api/iframe-proxy", params={"url": LESSON_URL})
        assert response.headers["x-cache"] == "HIT"

    def test_missing_url(self, client):
        assert_error_response(client.get("/api/iframe-proxy"), 400, "Missing url")

    def test_invalid_url(self, client):
        response = client.get("/api/iframe-proxy", params={"url": "::::"})
        assert_error_response(response, 400, "Invalid url")

    def test_forbidden_url(self, client):
        response = client.get(
            "/api/iframe-proxy",
            params={"url": "https://res.cloudinary.com/demo/image/upload/cat.png"},
        )
        assert_error_response(response, 403, "URL not allowed")

    def test_upstream_error(self, client, upstream):
        upstream.status = 503
        response = client.get("/api/iframe-proxy", params={"url": LESSON_URL})
        assert_error_response(response, 503, "res.cloudinary.com responded with 503")

    def test_network_failure(self, client, upstream):
        upstream.error = httpx.ConnectError("Name or service not known")
        response = client.get("/api/iframe-proxy", params={"url": LESSON_URL})
        assert_error_response(response, 502, "Name or service not known")

    def test_unexpected_failure_is_contained(self, client, upstream):
        upstream.error = RuntimeError("boom")
        response = client.get("/api/iframe-proxy", params={"url": LESSON_URL})
        assert_error_response(response, 502, "boom")

    def test_only_nocache_1_bypasses(self, client, upstream):
        client.get("/api/iframe-proxy", params={"url": LESSON_URL})
        response = client.get("/api/iframe-proxy", params={"url": LESSON_URL, "nocache": "true"})
        assert response.headers["x-cache"] == "HIT"
        assert upstream.call_count == 1

    def test_nocache_twice_with_changing_upstream(self, client, upstream):
        upstream.documents[LESSON_URL] = "<html><head></head><body>first</body></html>"
        first = client.get("/api/iframe-proxy", params={"url": LESSON_URL, "nocache": "1"})

        upstream.documents[LESSON_URL] = "<html><head></head><body>second</body></html>"
        second = client.get("/api/iframe-proxy", params={"url": LESSON_URL, "nocache": "1"})

        assert first.status_code == second.status_code == 200
        assert first.text != second.text
        assert "first" in first.text
        assert "second" in second.text
        for response in (first, second):
            assert '<base href="https://res.cloudinary.com/demo/raw/upload/">' in response.text
            assert 'name="viewport"' in response.text
            assert "data-legacy-error-guard" in response.text
        assert upstream.call_count == 2


class TestCacheAdminEndpoints:
    """Stats, cleanup and clear"""

    def test_stats_lists_entries(self, client):
        client.get("/api/iframe-proxy", params={"url": LESSON_URL})
        data = client.get("/api/iframe-proxy/stats").json()
        assert data["success"] is True
        assert data["stats"]["total_entries"] == 1
        assert data["entries"][0]["url"] == LESSON_URL

    def test_cleanup_removes_stale(self, client, clock):
        client.get("/api/iframe-proxy", params={"url": LESSON_URL})
        clock.advance(600)
        data = client.post("/api/iframe-proxy/cleanup").json()
        assert data["removed_entries"] == 1

    def test_clear(self, client, cache):
        client.get("/api/iframe-proxy", params={"url": LESSON_URL})
        data = client.delete("/api/iframe-proxy/clear").json()
        assert data["removed_entries"] == 1
        assert len(cache) == 0

    def test_health(self, client):
        data = client.get("/api/iframe-proxy/health").json()
        assert data["status"] == "healthy"
        assert data["allowed_hosts"] == ["res.cloudinary.com"]


# ============================================
# 3. Configuration
# ============================================

class TestAppHttpClient:
    """The fetch client create_app() builds for production"""

    @pytest.mark.parametrize("fetch_timeout", [15.0, 30.0])
    def test_transport_timeouts_never_undercut_fetch_timeout(self, fetch_timeout):
        app = create_app(ProxyConfig(fetch_timeout=fetch_timeout))
        proxy = app.state.iframe_proxy
        timeout = proxy.http_client.timeout

        assert proxy.fetch_timeout == fetch_timeout
        for phase in (timeout.connect, timeout.read, timeout.write, timeout.pool):
            assert phase is None or phase >= fetch_timeout

    def test_redirects_are_not_followed(self):
        app = create_app(ProxyConfig())
        assert app.state.iframe_proxy.http_client.follow_redirects is False


class TestProxyConfig:
    """Environment configuration"""

    def test_defaults(self):
        config = ProxyConfig.from_env({})
        assert config.allowed_hosts == frozenset({"res.cloudinary.com"})
        assert config.path_marker == "/raw/upload/"
        assert config.cache_ttl_seconds == 300
        assert config.cache_max_entries == 100
        assert config.cache_target_entries == 50
        assert config.fetch_timeout == 15
        assert config.lessons_api_token is None

    def test_overrides(self):
        config = ProxyConfig.from_env({
            "IFRAME_PROXY_ALLOWED_HOSTS": "res.cloudinary.com, Assets.Example.org ,",
            "IFRAME_PROXY_FETCH_TIMEOUT_SECONDS": "2.5",
            "LESSONS_API_TOKEN": "secret",
        })
        assert config.allowed_hosts == frozenset({"res.cloudinary.com", "assets.example.org"})
        assert config.fetch_timeout == 2.5
        assert config.lessons_api_token == "secret"
