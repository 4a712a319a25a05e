from typing import List, Union

import anyio
import httpx
import pytest
from fastapi import Depends
from httpx import ASGITransport, AsyncClient

from Backend.gemini_proxy.client import GeminiClient
from Backend.gemini_proxy.config import Settings
from Backend.gemini_proxy.deps import get_gemini_client, get_http_client, get_settings
from Backend.gemini_proxy.main import app

ALLOWED_ORIGIN = "https://wanderly.web.app"
GEMINI_BASE = "https://gemini.test/v1beta"
LOOKUP_URL = "https://identity.test/v1/accounts:lookup"

CONNECT_ERROR = "connect-error"

Outcome = Union[int, tuple, str]


class FakeUpstream:
    """
    Scripted Gemini + Firebase endpoints behind an httpx.MockTransport.

    `gemini_script` entries are a status code, a (status, body bytes) tuple or
    CONNECT_ERROR; the last entry repeats once the script runs out.
    """

    def __init__(self):
        self.gemini_script: List[Outcome] = [(200, b'{"candidates": []}')]
        self.gemini_calls: List[httpx.Request] = []
        self.lookup_script: Outcome = (200, b'{"users": [{"localId": "user-123"}]}')
        self.lookup_calls: List[httpx.Request] = []
        self.sleeps: List[float] = []
        self.gemini_latency: float = 0.0

    @staticmethod
    def _respond(outcome: Outcome, request: httpx.Request) -> httpx.Response:
        if outcome == CONNECT_ERROR:
            raise httpx.ConnectError("connection refused", request=request)
        if isinstance(outcome, tuple):
            status, body = outcome
            return httpx.Response(status, content=body)
        return httpx.Response(outcome, content=b'{"error": {}}')

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "identity.test":
            self.lookup_calls.append(request)
            return self._respond(self.lookup_script, request)

        self.gemini_calls.append(request)
        if self.gemini_latency:
            await anyio.sleep(self.gemini_latency)
        if len(self.gemini_script) > 1:
            outcome = self.gemini_script.pop(0)
        else:
            outcome = self.gemini_script[0]
        return self._respond(outcome, request)

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def settings():
    return Settings(
        gemini_api_key="test-gemini-key",
        firebase_web_api_key="test-firebase-key",
        auth_mode="firebase",
        allowed_origins=f"{ALLOWED_ORIGIN}, http://localhost:5173",
        allow_missing_origin=True,
        gemini_model="gemini-2.5-flash",
        gemini_api_base=GEMINI_BASE,
        firebase_lookup_url=LOOKUP_URL,
        max_retries=2,
        backoff_base_sec=0.5,
        upstream_timeout_sec=5,
        upstream_deadline_sec=20,
    )


@pytest.fixture
async def upstream_http(upstream):
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler)) as client:
        yield client


@pytest.fixture
async def gateway_client(settings, upstream, upstream_http):
    """Fixture to provide an async client for the Gemini proxy, wired to the fake upstream."""

    def gemini_client(
        settings: Settings = Depends(get_settings),
        http: httpx.AsyncClient = Depends(get_http_client),
    ) -> GeminiClient:
        return GeminiClient(
            http,
            url=settings.completion_url,
            api_key=settings.gemini_api_key,
            max_retries=settings.max_retries,
            backoff_base=settings.backoff_base_sec,
            deadline=settings.upstream_deadline_sec,
            sleep=upstream.sleep,
        )

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_http_client] = lambda: upstream_http
    app.dependency_overrides[get_gemini_client] = gemini_client
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
