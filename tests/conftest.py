"""
Pytest configuration and fixtures for sensechat-proxy tests

The upstream service is replaced by an httpx.MockTransport so the full
FastAPI app can be exercised through TestClient without network access.
"""
import pytest
import httpx
from fastapi.testclient import TestClient

from main import app
from proxy import ProxyService

class FakeUpstream:
    """Records every upstream request and answers with `self.respond`."""

    def __init__(self):
        self.requests = []
        self.respond = lambda request: httpx.Response(200, json={"ok": True})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

@pytest.fixture
def upstream():
    return FakeUpstream()

@pytest.fixture
def test_client(upstream):
    """Test client whose upstream calls go to the fake upstream"""
    ProxyService._client = httpx.AsyncClient(transport=httpx.MockTransport(upstream))

    with TestClient(app) as client:
        yield client

    # Lifespan shutdown closes the client; make sure nothing leaks between tests
    ProxyService._client = None

def sse_body(*events):
    """Join upstream SSE lines the way the upstream frames them."""
    return "".join(f"{event}\n\n" for event in events).encode("utf-8")

def parse_frames(text):
    """Split a client SSE body into its `data:` payloads."""
    return [frame[len("data: "):] for frame in text.split("\n\n") if frame]
