"""
Tests for the HTTP surface, with an in-process fake Ollama backend.
"""

import json
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

from codepilot.api.deps import AppComponents
from codepilot.api.main import create_app
from codepilot.core.pipeline import CompletionPipeline
from codepilot.core.request_manager import SessionRegistry
from codepilot.core.sandbox import CommandGuard
from codepilot.llm import OllamaStreamRelay
from codepilot.vector import PersistentVectorStore
from codepilot.vector.embeddings import DeterministicHashEmbedding


def ndjson(*records):
    return b"".join(json.dumps(r).encode() + b"\n" for r in records)


def tokens_then_done(*texts):
    return ndjson(*[{"response": t, "done": False} for t in texts], {"response": "", "done": True})


class FakeOllama:
    """Serves one canned response (or raises) for every backend call."""

    def __init__(self):
        self.body = tokens_then_done("Hello", " world")
        self.status = 200
        self.error = None
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status, content=self.body)


@pytest.fixture
def backend():
    return FakeOllama()


@pytest.fixture
def client(tmp_path, backend):
    def factory():
        registry = SessionRegistry(logger=Mock())
        store = PersistentVectorStore(tmp_path / "store.json", DeterministicHashEmbedding(dimension=16),
                                      logger=Mock())
        relay = OllamaStreamRelay(base_url="http://ollama.test", transport=httpx.MockTransport(backend),
                                  logger=Mock())
        guard = CommandGuard(["echo", "git status"], default_timeout=5, logger=Mock())
        pipeline = CompletionPipeline(registry, store, relay, model="coder", options={}, logger=Mock())
        return AppComponents(registry=registry, store=store, relay=relay, guard=guard, pipeline=pipeline)

    with TestClient(create_app(factory)) as test_client:
        yield test_client


class TestGenerate:

    def test_streams_tokens_as_plain_text(self, client, backend):
        response = client.post("/generate", json={
            "codeBeforeCursor": "function greet() {\n  return ",
            "language": "javascript",
            "requestId": "editor-1",
        })

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == "Hello world"
        sent = json.loads(backend.requests[0].content)
        assert sent["prompt"].endswith("function greet() {\n  return ")

    def test_empty_code_is_rejected(self, client):
        response = client.post("/generate", json={"codeBeforeCursor": "", "language": "python"})

        assert response.status_code == 400
        assert "codeBeforeCursor" in response.json()["error"]

    def test_missing_language_is_rejected(self, client):
        response = client.post("/generate", json={"codeBeforeCursor": "x = "})
        assert response.status_code == 400

    def test_backend_down_before_first_token(self, client, backend):
        backend.error = httpx.ConnectError("connection refused")

        response = client.post("/generate", json={"codeBeforeCursor": "x = ", "language": "python"})

        assert response.status_code == 500
        assert response.json() == {"error": "Generation failed"}

    def test_no_tokens_is_an_empty_reply(self, client, backend):
        backend.body = ndjson({"response": "", "done": True})

        response = client.post("/generate", json={"codeBeforeCursor": "x = ", "language": "python"})

        assert response.status_code == 200
        assert response.text == ""


class TestChat:

    def test_streams_reply(self, client, backend):
        backend.body = ndjson(
            {"message": {"role": "assistant", "content": "Sure"}, "done": False},
            {"message": {"role": "assistant", "content": "."}, "done": True},
        )

        response = client.post("/chat", json={
            "messages": [{"role": "user", "content": "Refactor add"}],
            "activeContext": {"filename": "math.js", "content": "function add(a, b) {}"},
            "os": "linux",
        })

        assert response.status_code == 200
        assert response.text == "Sure."
        sent = json.loads(backend.requests[0].content)
        assert backend.requests[0].url.path == "/api/chat"
        assert sent["messages"][0]["role"] == "system"
        assert "[ACTIVE FILE: math.js]" in sent["messages"][0]["content"]

    def test_failure_after_tokens_appends_error_trailer(self, client, backend):
        backend.body = ndjson(
            {"message": {"role": "assistant", "content": "Partial"}, "done": False},
            {"error": "model crashed"},
        )

        response = client.post("/chat", json={"messages": [{"role": "user", "content": "hi"}]})

        assert response.status_code == 200
        assert response.text.startswith("Partial\n[Chat Error]: ")
        assert "model crashed" in response.text

    def test_failure_before_tokens_is_500(self, client, backend):
        backend.status = 404
        backend.body = b'{"error": "model not found"}'

        response = client.post("/chat", json={"messages": [{"role": "user", "content": "hi"}]})

        assert response.status_code == 500
        assert response.json()["error"].startswith("Chat failed:")

    def test_empty_messages_rejected(self, client):
        response = client.post("/chat", json={"messages": []})
        assert response.status_code == 400

    def test_invalid_role_rejected(self, client):
        response = client.post("/chat", json={"messages": [{"role": "robot", "content": "hi"}]})
        assert response.status_code == 400


class TestIndex:

    def test_index_file(self, client):
        text = "function add(a, b) {\n  return a + b;\n}\n"

        first = client.post("/index", json={"text": text, "filename": "math.js"})
        again = client.post("/index", json={"text": text, "filename": "math.js"})

        assert first.status_code == 200
        assert first.json()["message"] == "Indexed successfully"
        assert first.json()["added"] == first.json()["chunks"] > 0
        assert again.json()["added"] == 0

    def test_missing_text_rejected(self, client):
        response = client.post("/index", json={"text": "  ", "filename": "a.js"})

        assert response.status_code == 400
        assert response.json()["error"] == "Text and filename required"


class TestTerminal:

    def test_disallowed_command_is_403(self, client):
        response = client.post("/terminal/execute", json={"command": "rm -rf /"})

        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "Command not allowed in sandbox"
        assert "echo" in body["suggestion"]

    def test_allowed_command_runs(self, client):
        response = client.post("/terminal/execute", json={"command": "echo hi"})

        assert response.status_code == 200
        body = response.json()
        assert body["stdout"].strip() == "hi"
        assert "error" not in body

    def test_empty_command_rejected(self, client):
        response = client.post("/terminal/execute", json={"command": ""})
        assert response.status_code == 400


def test_health_reports_components(client):
    with patch("codepilot.api.main.check_ollama_health", new=AsyncMock(return_value=True)):
        response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["ollama_available"] is True
    assert body["store_records"] == 0
    assert body["active_sessions"] == 0


class TestApplyEdit:

    def test_applies_blocks_from_reply(self, client):
        reply = (
            "Renamed it:\n```\n<<<<<<< SEARCH\nfunction add(a, b) {\n=======\n"
            "function sum(a, b) {\n>>>>>>> REPLACE\n```\n"
        )

        response = client.post("/chat/apply", json={
            "original": "function add(a, b) {\n  return a + b;\n}\n",
            "output": reply,
        })

        assert response.status_code == 200
        assert response.json() == {"text": "function sum(a, b) {\n  return a + b;\n}\n", "blocks": 1}

    def test_reply_without_blocks_replaces_text(self, client):
        response = client.post("/chat/apply", json={"original": "old", "output": "new"})

        assert response.json() == {"text": "new", "blocks": 0}


def test_index_write_failure_is_500(client):
    with patch.object(PersistentVectorStore, "_flush", side_effect=OSError("read-only file system")):
        response = client.post("/index", json={"text": "const a = 1;\n", "filename": "a.js"})

    assert response.status_code == 500
    assert "read-only file system" in response.json()["error"]
