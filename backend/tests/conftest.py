"""
Shared test fixtures.

- FakeClock: controllable time source for the document cache
- FakeUpstream: httpx.MockTransport handler standing in for the asset store
- proxy / app fixtures wired the same way create_app() wires production
"""

import asyncio
import sys
from pathlib import Path

import httpx
import pytest

# Add the backend directory to the Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from iframe_proxy import IframeProxy, ProxyConfig, UrlAllowlist
from lessons import BlockType, ContentBlock
from proxy_cache import DocumentCache

ASSET_HOST = "res.cloudinary.com"
LESSON_URL = "https://res.cloudinary.com/demo/raw/upload/lesson.html"

SIMPLE_DOCUMENT = (
    "<!DOCTYPE html>\n<html>\n<head>\n<title>Legacy</title>\n</head>\n"
    "<body><p>Hello</p></body>\n</html>"
)


# ============================================
# Fakes
# ============================================

class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """
    Scriptable upstream server.

    Documents are served per URL; ``status``, ``error`` and ``delay`` change
    the behaviour of every following request.
    """

    def __init__(self):
        self.documents = {}
        self.requests = []
        self.status = 200
        self.error = None
        self.delay = 0.0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.status != 200:
            return httpx.Response(self.status, text="upstream error")
        body = self.documents.get(str(request.url))
        if body is None:
            return httpx.Response(404, text="not found")
        return httpx.Response(
            200,
            text=body,
            headers={"Content-Type": "text/html; charset=utf-8"},
        )

    @property
    def call_count(self) -> int:
        return len(self.requests)


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return DocumentCache(ttl_seconds=300, max_entries=100, target_entries=50, clock=clock)


@pytest.fixture
def allowlist():
    return UrlAllowlist({ASSET_HOST}, "/raw/upload/")


@pytest.fixture
def upstream():
    fake = FakeUpstream()
    fake.documents[LESSON_URL] = SIMPLE_DOCUMENT
    return fake


@pytest.fixture
def http_client(upstream):
    return httpx.AsyncClient(transport=httpx.MockTransport(upstream))


@pytest.fixture
def proxy(cache, allowlist, http_client):
    return IframeProxy(cache, allowlist, http_client, fetch_timeout=15.0)


@pytest.fixture
def config():
    return ProxyConfig(lessons_api_url="http://lessons.test/api")


@pytest.fixture
def sample_blocks():
    """One block of every type, stored in order."""
    return [
        ContentBlock(type=BlockType.TEXT, order=0, content="<p>Intro</p>"),
        ContentBlock(type=BlockType.VIDEO, order=1, media_url="https://youtu.be/dQw4w9WgXcQ"),
        ContentBlock(type=BlockType.IFRAME, order=2, iframe_src=LESSON_URL),
        ContentBlock(type=BlockType.CODE, order=3, content="print('hi')",
                     settings={"language": "python"}),
        ContentBlock(type=BlockType.QUIZ, order=4),
    ]


# ============================================
# Helper Functions
# ============================================

def assert_error_response(response, status_code, message=None):
    """
    Assert a JSON error payload.

    Usage:
        assert_error_response(response, 403, "URL not allowed")
    """
    assert response.status_code == status_code, \
        f"Expected {status_code}, got {response.status_code}: {response.text}"
    payload = response.json()
    assert "error" in payload, f"Missing error field: {payload}"
    if message is not None:
        assert payload["error"] == message
