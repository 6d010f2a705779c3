"""
luminous-client - Pytest Configuration

Configures:
- An in-process fake inference service on top of ``httpx.MockTransport``
- Helpers to build SSE bodies delivered in arbitrary reads
"""

import inspect
import json
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx
import pytest
import pytest_asyncio

from luminous_client import Client, ClientConfig


BASE_URL = "https://inference.test"
TOKEN = "test-token"


# ============================================================
# Fake service
# ============================================================

class ChunkedBody(httpx.AsyncByteStream):
    """Response body delivered in the given reads; records whether it was closed."""

    def __init__(self, reads: Iterable[bytes]):
        self._reads = list(reads)
        self.closed = False

    async def __aiter__(self):
        for data in self._reads:
            if self.closed:
                break
            yield data

    async def aclose(self) -> None:
        self.closed = True


def sse(event: Optional[str], data: Any) -> bytes:
    """Encode one SSE record; ``data`` is JSON encoded unless it is a string."""
    payload = data if isinstance(data, str) else json.dumps(data)
    lines = []
    if event is not None:
        lines.append(f"event: {event}")
    lines.append(f"data: {payload}")
    return ("\n".join(lines) + "\n\n").encode()


class FakeService:
    """
    Records every request and answers with the queued handler.

    Usage:
        service.respond(lambda request: httpx.Response(200, json={...}))
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self._handler: Optional[Callable[[httpx.Request], Any]] = None

    def respond(self, handler: Callable[[httpx.Request], Any]) -> None:
        self._handler = handler

    def respond_json(self, status_code: int, body: Any, headers: Optional[Dict[str, str]] = None) -> None:
        self.respond(lambda request: httpx.Response(status_code, json=body, headers=headers))

    def respond_stream(self, reads: Iterable[bytes], status_code: int = 200) -> ChunkedBody:
        body = ChunkedBody(reads)
        self.respond(lambda request: httpx.Response(
            status_code, headers={"content-type": "text/event-stream"}, stream=body
        ))
        return body

    async def handle(self, request: httpx.Request):
        self.requests.append(request)
        assert self._handler is not None, "no response configured"
        result = self._handler(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self) -> Dict[str, Any]:
        return json.loads(self.last_request.content)


@pytest.fixture
def service():
    """A fake inference service."""
    return FakeService()


@pytest_asyncio.fixture
async def client(service):
    """A client talking to the fake service."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(service.handle))
    client = Client(config=ClientConfig(base_url=BASE_URL, token=TOKEN), http_client=http_client)
    yield client
    await client.close()
    await http_client.aclose()
