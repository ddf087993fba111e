"""
Pytest configuration and shared fixtures for the agerus test suite.
"""

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import pytest

# Add src to path for imports during testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from agerus.events import EventBus  # noqa: E402
from agerus.llm.base import ToolDefinition  # noqa: E402
from agerus.llm.client import OllamaClient  # noqa: E402

# Disable logging during tests to reduce noise
logging.getLogger("agerus").setLevel(logging.CRITICAL)

CHAT_URL = "http://ollama.test/api/chat"


def ndjson(*objects: Dict[str, Any]) -> bytes:
    """Encode stream lines the way the backend sends them."""
    return b"".join(json.dumps(obj, ensure_ascii=False).encode("utf-8") + b"\n" for obj in objects)


def text_reply(text: str) -> bytes:
    return ndjson(
        {"message": {"role": "assistant", "content": text}, "done": False},
        {"message": {"role": "assistant", "content": ""}, "done": True},
    )


def tool_reply(*calls: Dict[str, Any], content: str = "") -> bytes:
    return ndjson(
        {
            "message": {
                "role": "assistant",
                "content": content,
                "tool_calls": [{"function": call} for call in calls],
            },
            "done": False,
        },
        {"done": True},
    )


class ScriptedBackend:
    """Answers chat requests from a list of canned responses and records each request body."""

    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.requests: List[Dict[str, Any]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        if not self.responses:
            raise AssertionError("Unexpected extra backend request")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeToolClient:
    """Stands in for the tool server: records calls and returns canned results."""

    def __init__(
        self,
        definitions: Optional[List[ToolDefinition]] = None,
        results: Optional[Dict[str, Any]] = None,
        list_error: Optional[Exception] = None,
    ):
        self.definitions = definitions if definitions is not None else [
            ToolDefinition(
                name="run_command",
                description="Run a shell command",
                input_schema={"type": "object", "properties": {"command": {"type": "string"}}},
            )
        ]
        self.results = results or {}
        self.list_error = list_error
        self.calls: List[tuple] = []

    async def list_tools(self) -> List[ToolDefinition]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.definitions)

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> str:
        self.calls.append((name, dict(arguments or {})))
        result = self.results.get(name, "ok")
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
async def events():
    """Event bus large enough that tests never block on it."""
    return EventBus(maxsize=1000)


@pytest.fixture
def make_client():
    """Build an OllamaClient wired to a scripted mock transport.

    Responses are served in order; an exception in the list is raised by
    the transport instead.
    """
    def _make(responses: List[Any], model: str = "test-model"):
        backend = ScriptedBackend(responses)
        client = OllamaClient(CHAT_URL, model, timeout=5, transport=httpx.MockTransport(backend))
        return client, backend

    return _make


@pytest.fixture
def fake_tools():
    """Factory for fake tool clients."""
    return FakeToolClient


@pytest.fixture
def workspace(tmp_path):
    """A small workspace directory with a couple of files."""
    root = tmp_path / "workspace"
    root.mkdir()
    (root / "README.md").write_text("# Sample Project\n\nThis is a test project.\n")
    src = root / "src"
    src.mkdir()
    (src / "main.py").write_text("def main():\n    print('Hello, World!')\n")
    return root


@pytest.fixture
def clean_environment():
    """Ensure configuration environment variables don't leak into tests."""
    original_env = os.environ.copy()

    for var in ("LLM_AGENT_WORKSPACE", "LLM_MODEL", "LLM_BASE_URL", "AGERUS_LOG_LEVEL"):
        os.environ.pop(var, None)

    yield

    os.environ.clear()
    os.environ.update(original_env)


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests that spawn a real bash process"
    )
