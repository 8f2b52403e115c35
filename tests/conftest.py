"""tests/conftest.py

Pytest configuration and shared fixtures for the search-server test suite.

Outbound HTTP is served by :class:`FakeUpstream`, an ``httpx.MockTransport``
router, so every test is offline and deterministic.
"""

from __future__ import annotations

# Standard Library
from collections.abc import Callable
from typing import Any

# Third-Party Libraries
import httpx
import pytest

# Local Modules
from peak_server.config import PeakSettings

Responder = httpx.Response | Callable[[httpx.Request], httpx.Response]

_NO_CREDENTIALS: dict[str, Any] = {
    "openrouter_api_key": "",
    "openrouter_credits_key": "",
    "huggingface_token": "",
    "stability_key": "",
    "kling_access_key": "",
    "kling_secret_key": "",
    "tavily_api_key": "",
    "google_search_api_key": "",
    "cerebras_api_key": "",
    "supabase_url": "",
    "supabase_anon_key": "",
    "enable_ddg_search": False,
    "kling_poll_interval": 0.0,
    "hf_video_max_wait": 0.0,
}


class FakeUpstream:
    """Routes requests to canned responses by method and URL fragment.

    A route registered with several responses serves them in order and then
    keeps repeating the last one.  Unmatched requests get a 404.
    """

    def __init__(self) -> None:
        self.routes: list[tuple[str, str, list[Responder]]] = []
        self.requests: list[httpx.Request] = []

    def add(self, method: str, fragment: str, *responses: Responder) -> None:
        self.routes.append((method.upper(), fragment, list(responses)))

    def calls(self, fragment: str, method: str | None = None) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if fragment in str(r.url) and (method is None or r.method == method.upper())
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for method, fragment, responses in self.routes:
            if request.method == method and fragment in str(request.url):
                responder = responses.pop(0) if len(responses) > 1 else responses[0]
                if callable(responder) and not isinstance(responder, httpx.Response):
                    return responder(request)
                # Fresh copy so the same canned response can be served twice.
                return httpx.Response(
                    responder.status_code,
                    headers=responder.headers,
                    content=responder.content,
                )
        return httpx.Response(404, json={"error": f"unmocked {request.method} {request.url}"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def make_settings() -> Callable[..., PeakSettings]:
    """Build settings with every credential blank unless overridden.

    Returns:
        Factory accepting ``PeakSettings`` field overrides.
    """

    def _factory(**overrides: Any) -> PeakSettings:
        return PeakSettings(_env_file=None, **{**_NO_CREDENTIALS, **overrides})

    return _factory


@pytest.fixture
def settings(make_settings: Callable[..., PeakSettings]) -> PeakSettings:
    """Settings with no provider credentials configured."""
    return make_settings()


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def client(upstream: FakeUpstream) -> httpx.AsyncClient:
    """Async client whose requests are answered by ``upstream``."""
    return httpx.AsyncClient(transport=upstream.transport)


@pytest.fixture
def store_settings(make_settings: Callable[..., PeakSettings]) -> PeakSettings:
    """Settings with the hosted database configured."""
    return make_settings(
        supabase_url="https://db.example.supabase.co",
        supabase_anon_key="anon-key",
    )


@pytest.fixture
def sample_messages() -> list[dict[str, Any]]:
    """Conversation history with plain and structured content."""
    return [
        {"role": "user", "content": "Hello!"},
        {"role": "assistant", "content": "Hi there! How can I help you?"},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": "What is"},
                {"type": "image_url", "image_url": {"url": "https://example.com/cat.png"}},
                {"type": "text", "text": "in this picture?"},
            ],
        },
    ]


def chat_completion(content: str) -> httpx.Response:
    """OpenAI-style chat completion response carrying *content*."""
    return httpx.Response(
        200,
        json={"choices": [{"message": {"role": "assistant", "content": content}}]},
    )
