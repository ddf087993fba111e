"""
Tests for the backend protocol client.
"""

import httpx
import pytest
import requests

from agerus.errors import BackendConnectionError, BackendError
from agerus.llm.client import OllamaClient
from conftest import CHAT_URL, text_reply

MESSAGES = [{"role": "user", "content": "hi"}]
TOOLS = [{"type": "function", "function": {"name": "run_command", "description": "", "parameters": {}}}]


async def read_all(client, tools=None, on_fallback=None) -> bytes:
    chunks = [chunk async for chunk in client.stream_chat(MESSAGES, tools, on_fallback=on_fallback)]
    return b"".join(chunks)


class TestRequestBody:
    """Shape of the chat request."""

    def test_build_request_with_tools(self):
        client = OllamaClient(CHAT_URL, "qwen")
        body = client.build_request(MESSAGES, TOOLS)

        assert body == {"model": "qwen", "messages": MESSAGES, "tools": TOOLS, "stream": True}

    def test_build_request_without_tools_omits_key(self):
        client = OllamaClient(CHAT_URL, "qwen")

        assert "tools" not in client.build_request(MESSAGES, None)

    def test_tags_url_derived_from_chat_url(self):
        assert OllamaClient(CHAT_URL, "m").tags_url == "http://ollama.test/api/tags"


class TestStreamChat:
    """Streaming, fallback and failure behaviour."""

    async def test_streams_response_bytes(self, make_client):
        client, backend = make_client([httpx.Response(200, content=text_reply("hello"))])

        data = await read_all(client, TOOLS)

        assert data == text_reply("hello")
        assert len(backend.requests) == 1
        assert backend.requests[0]["tools"] == TOOLS
        assert backend.requests[0]["stream"] is True
        await client.close()

    async def test_client_error_falls_back_once_without_tools(self, make_client):
        client, backend = make_client([
            httpx.Response(400, json={"error": "model does not support tools"}),
            httpx.Response(200, content=text_reply("plain answer")),
        ])
        notices = []

        async def on_fallback(notice):
            notices.append(notice)

        data = await read_all(client, TOOLS, on_fallback)

        assert data == text_reply("plain answer")
        assert notices == ["Model 'test-model' rejected tools. Falling back to text-only mode."]
        assert len(backend.requests) == 2
        assert "tools" in backend.requests[0]
        assert "tools" not in backend.requests[1]
        await client.close()

    async def test_failed_retry_is_terminal(self, make_client):
        client, backend = make_client([
            httpx.Response(400, text="no tools"),
            httpx.Response(404, text="model not found"),
        ])

        with pytest.raises(BackendError) as exc_info:
            await read_all(client, TOOLS)

        assert exc_info.value.status == 404
        assert "model not found" in str(exc_info.value)
        assert len(backend.requests) == 2
        await client.close()

    async def test_client_error_without_tools_is_not_retried(self, make_client):
        client, backend = make_client([httpx.Response(400, text="context too long")])
        notices = []

        async def on_fallback(notice):
            notices.append(notice)

        with pytest.raises(BackendError) as exc_info:
            await read_all(client, None, on_fallback)

        assert exc_info.value.status == 400
        assert notices == []
        assert len(backend.requests) == 1
        await client.close()

    async def test_server_error_is_not_retried(self, make_client):
        client, backend = make_client([httpx.Response(500, text="internal")])
        notices = []

        async def on_fallback(notice):
            notices.append(notice)

        with pytest.raises(BackendError) as exc_info:
            await read_all(client, TOOLS, on_fallback)

        assert exc_info.value.status == 500
        assert str(exc_info.value) == "Backend API error (500): internal"
        assert notices == []
        assert len(backend.requests) == 1
        await client.close()

    async def test_connection_failure(self, make_client):
        client, backend = make_client([httpx.ConnectError("connection refused")])

        with pytest.raises(BackendConnectionError):
            await read_all(client, TOOLS)

        assert len(backend.requests) == 1
        await client.close()

    async def test_timeout_is_connection_failure(self, make_client):
        client, _ = make_client([httpx.ReadTimeout("too slow")])

        with pytest.raises(BackendConnectionError, match="timed out"):
            await read_all(client)
        await client.close()


class FakeTagsResponse:
    def __init__(self, payload, status_error=None):
        self.payload = payload
        self.status_error = status_error

    def raise_for_status(self):
        if self.status_error:
            raise self.status_error

    def json(self):
        return self.payload


class TestListModels:
    """Model listing over the tags endpoint."""

    def test_returns_model_names(self, monkeypatch):
        seen = {}

        def fake_get(url, timeout):
            seen["url"] = url
            return FakeTagsResponse({"models": [{"name": "qwen2.5-coder:latest"}, {"name": "llama3"}, {"size": 1}]})

        monkeypatch.setattr(requests, "get", fake_get)

        names = OllamaClient(CHAT_URL, "m").list_models()

        assert names == ["qwen2.5-coder:latest", "llama3"]
        assert seen["url"] == "http://ollama.test/api/tags"

    def test_connection_failure(self, monkeypatch):
        def fake_get(url, timeout):
            raise requests.ConnectionError("refused")

        monkeypatch.setattr(requests, "get", fake_get)

        with pytest.raises(BackendConnectionError, match="Failed to fetch models"):
            OllamaClient(CHAT_URL, "m").list_models()

    def test_http_error(self, monkeypatch):
        monkeypatch.setattr(
            requests, "get",
            lambda url, timeout: FakeTagsResponse({}, status_error=requests.HTTPError("503")),
        )

        with pytest.raises(BackendConnectionError):
            OllamaClient(CHAT_URL, "m").list_models()
