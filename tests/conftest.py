import json
from collections.abc import Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from magicbanana import transport
from magicbanana.main import app

GEMINI_KEY = "AIza" + "g" * 35
REPLICATE_KEY = "r8_" + "r" * 40


@pytest.fixture(autouse=True)
def env(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", GEMINI_KEY)
    monkeypatch.setenv("REPLICATE_API_TOKEN", REPLICATE_KEY)
    monkeypatch.setenv("GEMINI_API_BASE", "https://gemini.test/v1beta")
    monkeypatch.setenv("REPLICATE_API_BASE", "https://replicate.test/v1")
    monkeypatch.setenv("ENHANCE_POLL_INTERVAL", "0")
    monkeypatch.setenv("ENHANCE_MAX_ATTEMPTS", "60")
    monkeypatch.setenv("COOKIE_SECURE", "false")


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def vendor(monkeypatch) -> Callable[[Callable[[httpx.Request], httpx.Response]], list[httpx.Request]]:
    """Route outgoing vendor calls to a handler and record the requests."""

    def install(handler: Callable[[httpx.Request], httpx.Response]) -> list[httpx.Request]:
        seen: list[httpx.Request] = []

        def recording(request: httpx.Request) -> httpx.Response:
            request.read()
            seen.append(request)
            return handler(request)

        monkeypatch.setattr(
            transport,
            "open_client",
            lambda timeout: httpx.AsyncClient(timeout=timeout, transport=httpx.MockTransport(recording)),
        )
        return seen

    return install


def sse(*chunks: dict) -> httpx.Response:
    body = "".join(f"data: {json.dumps(chunk)}\r\n\r\n" for chunk in chunks)
    return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})
