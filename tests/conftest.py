# Shared fixtures: an in-memory scan backend behind httpx.MockTransport.

import json

import httpx
import pytest

from autotrack.core.api import ScanApi

CUSTOMER = "cust-1"
PREFIX = f"/api/customers/{CUSTOMER}"


def chunk(pages=10, has_more=True, total=50, login=False, login_url=None,
          phase_complete=False, niche=None, new_pages=None, **extra):
    """A phase-1 process-chunk response body."""
    body = {
        "pagesProcessed": pages,
        "hasMore": has_more,
        "discovery": {"totalUrlsDiscovered": total, "technologies": {"cms": "wordpress"}},
        "newPages": new_pages if new_pages is not None else [
            {"url": f"https://example.com/p{i}", "title": None, "pageType": "content",
             "hasForm": False, "hasCTA": False} for i in range(pages)
        ],
    }
    if login:
        body["loginDetected"] = True
    if login_url:
        body["loginUrl"] = login_url
    if phase_complete:
        body["phaseComplete"] = True
    if niche:
        body["detectedNiche"] = niche
    body.update(extra)
    return body


def scan(scan_id="scan-1", status="CRAWLING", **extra):
    body = {"id": scan_id, "status": status, "websiteUrl": "https://example.com"}
    body.update(extra)
    return body


class FakeBackend:
    """
    Routes requests by (method, path-after-customer-prefix).

    A route value is a JSON body (200), a ``(status, body)`` tuple, or a
    callable taking the request JSON and returning either of those.
    Chunk responses are queued per phase.
    """

    def __init__(self):
        self.requests = []
        self.routes = {}
        self.chunks = {"phase1": [], "phase2": []}
        self.on_chunk = None

    def route(self, method, suffix, response):
        self.routes[(method, suffix)] = response

    def calls(self, method, suffix_end=""):
        return [body for m, s, body in self.requests if m == method and s.endswith(suffix_end)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        assert path.startswith(PREFIX), path
        suffix = path[len(PREFIX):]
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, suffix, body))

        if request.method == "POST" and suffix.endswith("/process-chunk"):
            if self.on_chunk:
                self.on_chunk(body)
            return self._respond(self.chunks[body["phase"]].pop(0), body)

        key = (request.method, suffix)
        if key not in self.routes:
            if request.method == "POST":
                return httpx.Response(200, json={})
            return httpx.Response(404, json={"message": f"no route {suffix}"})
        return self._respond(self.routes[key], body)

    @staticmethod
    def _respond(value, body):
        if callable(value):
            value = value(body)
        if isinstance(value, Exception):
            raise value
        if isinstance(value, tuple):
            status, payload = value
            return httpx.Response(status, json=payload)
        return httpx.Response(200, json=value)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def api(backend):
    return ScanApi("https://app.test", CUSTOMER, token="tok",
                   transport=httpx.MockTransport(backend.handler))
