"""tests/test_api.py

End-to-end tests for the HTTP interface (peak_server/api.py).

Each app is built with ``create_app()`` and a mock transport, and entered
with ``TestClient`` as a context manager so the lifespan (shared client,
store, orchestrator) runs.
"""

from __future__ import annotations

# Standard Library
import json
from collections.abc import Iterator

# Third-Party Libraries
import httpx
import pytest
from fastapi.testclient import TestClient

# Local Modules
from conftest import FakeUpstream, chat_completion
from peak_server.api import create_app
from peak_server.errors import FRIENDLY_MESSAGE

COMPLETIONS = "openrouter.ai/api/v1/chat/completions"
ERROR_LOGS = "/rest/v1/error_logs"
HISTORY = "/rest/v1/search_history"


@pytest.fixture
def make_api(upstream: FakeUpstream) -> Iterator:
    """Factory yielding a started TestClient for the given settings."""
    clients: list[TestClient] = []

    def _factory(settings) -> TestClient:
        test_client = TestClient(create_app(settings, transport=upstream.transport))
        test_client.__enter__()
        clients.append(test_client)
        return test_client

    yield _factory
    for test_client in clients:
        test_client.__exit__(None, None, None)


@pytest.fixture
def text_api(make_api, make_settings) -> TestClient:
    return make_api(make_settings(openrouter_api_key="sk-or-test"))


@pytest.fixture
def store_api(make_api, make_settings) -> TestClient:
    return make_api(
        make_settings(
            openrouter_api_key="sk-or-test",
            supabase_url="https://db.example.supabase.co",
            supabase_anon_key="anon-key",
        )
    )


class TestHealth:
    def test_health(self, text_api: TestClient) -> None:
        response = text_api.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "server": "peak-search-server"}


class TestSearchPost:
    """Test suite for POST /search."""

    def test_chat_end_to_end(self, text_api: TestClient, upstream: FakeUpstream) -> None:
        """Test the detailed/direct answer contract for a chat query."""
        answer = "[QUICK]\n2 + 2 equals 4.\n\n[DETAILED]\n" + "Addition combines quantities. " * 8
        upstream.add("POST", COMPLETIONS, chat_completion(answer))

        response = text_api.post(
            "/search",
            json={"messages": [{"role": "user", "content": "What is 2+2?"}], "mode": "chat"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["detailed_answer"] == answer.strip()
        assert body["direct_answer"] == body["detailed_answer"][:150] + "..."

    def test_structured_content(self, text_api: TestClient, upstream: FakeUpstream) -> None:
        """Test the text parts of a structured message form the query."""
        upstream.add("POST", COMPLETIONS, chat_completion("A cat."))

        response = text_api.post(
            "/search",
            json={
                "messages": [
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": "What is this?"},
                            {"type": "image_url", "image_url": {"url": "https://example.com/c.png"}},
                        ],
                    }
                ],
            },
        )

        assert response.status_code == 200
        sent = json.loads(upstream.calls(COMPLETIONS)[0].content)["messages"]
        assert sent[-1] == {"role": "user", "content": "What is this?"}

    def test_video_without_credentials(self, make_api, make_settings) -> None:
        """Test video mode with no video credentials still returns a payload."""
        api = make_api(make_settings())

        response = api.post(
            "/search",
            json={"messages": [{"role": "user", "content": "a cat surfing"}], "mode": "video"},
        )

        assert response.status_code == 200
        assert response.json()["detailed_answer"].startswith("VIDEO_DATA:")

    def test_null_options_use_defaults(self, text_api: TestClient, upstream: FakeUpstream) -> None:
        """Test explicit nulls for mode, lang and quality fall back to the defaults."""
        upstream.add("POST", COMPLETIONS, chat_completion("4"))

        response = text_api.post(
            "/search",
            json={
                "messages": [{"role": "user", "content": "What is 2+2?"}],
                "mode": None,
                "lang": None,
                "quality": None,
            },
        )

        assert response.status_code == 200
        assert response.json()["detailed_answer"] == "4"
        sent = json.loads(upstream.calls(COMPLETIONS)[0].content)
        assert sent["model"] == "openai/gpt-4o-mini"
        assert "English" in sent["messages"][0]["content"]

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"mode": "chat"},
            {"messages": []},
            {"messages": "What is 2+2?"},
            {"messages": [{"content": "no role"}]},
        ],
    )
    def test_malformed_body_rejected(
        self, text_api: TestClient, upstream: FakeUpstream, payload: dict
    ) -> None:
        """Test invalid bodies get a 400 and no provider call."""
        response = text_api.post("/search", json=payload)

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request body."}
        assert upstream.requests == []

    def test_last_message_without_text(self, text_api: TestClient, upstream: FakeUpstream) -> None:
        response = text_api.post(
            "/search",
            json={"messages": [{"role": "user", "content": "   "}]},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "The last message must contain text."}
        assert upstream.requests == []


class TestSearchGet:
    """Test suite for GET /search."""

    def test_missing_query(self, text_api: TestClient) -> None:
        response = text_api.get("/search", params={"q": "  "})
        assert response.status_code == 400
        assert response.json() == {"error": "Query parameter 'q' is required."}

    def test_image_mode(self, text_api: TestClient, upstream: FakeUpstream) -> None:
        """Test an image query needs no credentials and no request."""
        response = text_api.get("/search", params={"q": "a red fox", "mode": "image"})

        assert response.status_code == 200
        assert response.json() == {
            "detailed_answer": "IMAGE_DATA:https://image.pollinations.ai/prompt/a%20red%20fox",
            "direct_answer": "Image generated.",
        }
        assert upstream.requests == []

    def test_chat_mode(self, text_api: TestClient, upstream: FakeUpstream) -> None:
        upstream.add("POST", COMPLETIONS, chat_completion("4"))

        response = text_api.get("/search", params={"q": "What is 2+2?"})

        assert response.json() == {"detailed_answer": "4", "direct_answer": "4..."}


class TestErrorMapping:
    """Test suite for the sanitized error responses."""

    def test_missing_credentials_friendly_message(self, make_api, make_settings) -> None:
        """Test a missing text key maps to the friendly 503."""
        api = make_api(make_settings())

        response = api.get("/search", params={"q": "hello"})

        assert response.status_code == 503
        assert response.json() == {"error": FRIENDLY_MESSAGE}

    def test_billing_failure_is_429(self, text_api: TestClient, upstream: FakeUpstream) -> None:
        upstream.add("POST", COMPLETIONS, httpx.Response(402, json={"error": {"message": "Payment required"}}))

        response = text_api.get("/search", params={"q": "hello"})

        assert response.status_code == 429
        assert response.json() == {"error": FRIENDLY_MESSAGE}

    def test_other_failure_passthrough(self, text_api: TestClient, upstream: FakeUpstream) -> None:
        """Test other errors surface as "error: <message>" without a traceback."""
        upstream.add("POST", COMPLETIONS, httpx.Response(500, text="upstream boom"))

        response = text_api.get("/search", params={"q": "hello"})

        assert response.status_code == 500
        message = response.json()["error"]
        assert message.startswith("error: ")
        assert "upstream boom" in message
        assert "Traceback" not in message

    def test_failure_logged_to_store(self, store_api: TestClient, upstream: FakeUpstream) -> None:
        upstream.add("POST", COMPLETIONS, httpx.Response(500, text="upstream boom"))
        upstream.add("POST", ERROR_LOGS, httpx.Response(201))

        store_api.get("/search", params={"q": "hello"})

        row = json.loads(upstream.calls(ERROR_LOGS)[0].content)
        assert row["context"] == "search"
        assert "upstream boom" in row["error_message"]

    def test_error_log_failure_does_not_mask_response(
        self, store_api: TestClient, upstream: FakeUpstream
    ) -> None:
        """Test a failing error-log insert leaves the primary error intact."""
        upstream.add("POST", COMPLETIONS, httpx.Response(500, text="upstream boom"))
        upstream.add("POST", ERROR_LOGS, httpx.Response(500, text="db down"))

        response = store_api.get("/search", params={"q": "hello"})

        assert response.status_code == 500
        assert "upstream boom" in response.json()["error"]


class TestCredits:
    """Test suite for GET /credits."""

    def test_shape_without_credentials(self, make_api, make_settings) -> None:
        response = make_api(make_settings()).get("/credits")

        assert response.status_code == 200
        assert response.json() == {
            "openrouter": {"total_credits": 0, "total_usage": 0, "remaining": 0},
            "kling": {"total": 66, "used": 0, "remaining": 66},
        }

    def test_with_usage(self, store_api: TestClient, upstream: FakeUpstream) -> None:
        upstream.add(
            "GET",
            "openrouter.ai/api/v1/credits",
            httpx.Response(200, json={"data": {"total_credits": 10, "total_usage": 4}}),
        )
        upstream.add("GET", "/rest/v1/system_stats", httpx.Response(200, json=[{"kling_usage": 30}]))

        body = store_api.get("/credits").json()

        assert body["openrouter"] == {"total_credits": 10, "total_usage": 4, "remaining": 6}
        assert body["kling"] == {"total": 66, "used": 30, "remaining": 36}


class TestHistory:
    """Test suite for the history endpoints."""

    def test_save_without_store(self, text_api: TestClient) -> None:
        response = text_api.post("/history", json={"query": "q", "answer": "a"})
        assert response.status_code == 503

    def test_list_without_store(self, text_api: TestClient) -> None:
        assert text_api.get("/history").json() == {"history": []}

    def test_save_requires_both_fields(self, store_api: TestClient, upstream: FakeUpstream) -> None:
        response = store_api.post("/history", json={"query": "What is 2+2?"})

        assert response.status_code == 400
        assert upstream.calls(HISTORY) == []

    def test_save(self, store_api: TestClient, upstream: FakeUpstream) -> None:
        upstream.add("POST", HISTORY, httpx.Response(201))

        response = store_api.post("/history", json={"query": "What is 2+2?", "answer": "4"})

        assert response.json() == {"success": True}
        assert json.loads(upstream.calls(HISTORY)[0].content) == {"query": "What is 2+2?", "answer": "4"}

    def test_save_failure(self, store_api: TestClient, upstream: FakeUpstream) -> None:
        upstream.add("POST", HISTORY, httpx.Response(500, text="db down"))

        response = store_api.post("/history", json={"query": "q", "answer": "a"})

        assert response.status_code == 500

    def test_list(self, store_api: TestClient, upstream: FakeUpstream) -> None:
        rows = [{"id": 1, "query": "q", "answer": "a", "created_at": "2025-01-15T10:00:00Z"}]
        upstream.add("GET", HISTORY, httpx.Response(200, json=rows))

        response = store_api.get("/history", params={"limit": 3})

        assert response.json() == {"history": rows}
        assert upstream.calls(HISTORY)[0].url.params["limit"] == "3"

    def test_list_limit_validated(self, store_api: TestClient) -> None:
        assert store_api.get("/history", params={"limit": 0}).status_code == 400
