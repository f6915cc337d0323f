"""
Tests for the ToolStream HTTP server.
"""

import json
import logging
import os
from unittest.mock import patch

import httpx
import pytest

from toolstream.config import ClientConfig
from toolstream.orchestrator import StreamOrchestrator
from toolstream.server.config import ServerConfig
from toolstream.tools import ToolDefinition, ToolRegistry


def reply_payload(*parts):
    return {"candidates": [{"content": {"role": "model", "parts": list(parts)}}]}


def sse_body(*payloads):
    return "".join(f"data: {json.dumps(p)}\n\n" for p in payloads).encode()


def parse_sse(text):
    """Split an SSE body into (event, data) pairs."""
    events = []
    for block in text.replace("\r\n", "\n").split("\n\n"):
        event, data = "message", []
        for line in block.split("\n"):
            if line.startswith("event:"):
                event = line[len("event:"):].strip()
            elif line.startswith("data:"):
                data.append(line[len("data:"):].lstrip())
        if data:
            events.append((event, "\n".join(data)))
    return events


class ModelEndpoint:
    """Fake model endpoint serving one scripted reply per request."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests = []

    def __call__(self, request):
        self.requests.append(json.loads(request.content))
        reply = self.replies[min(len(self.requests) - 1, len(self.replies) - 1)]
        if isinstance(reply, httpx.Response):
            return reply
        if request.url.path.endswith(":streamGenerateContent"):
            return httpx.Response(200, content=sse_body(*reply))
        return httpx.Response(200, json=reply[-1])


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    from sse_starlette.sse import AppStatus

    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    yield
    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None


@pytest.fixture
def registry():
    registry = ToolRegistry()

    @registry.tool(
        description="Get the time in a city.",
        parameters={
            "type": "object",
            "properties": {"city": {"type": "string"}},
            "required": ["city"],
        },
    )
    def get_time(args):
        return {"time": "12:00", "city": args.get("city")}

    return registry


def make_client(registry, endpoint, stream=True, config=None):
    from fastapi.testclient import TestClient

    from toolstream.server.app import create_app

    app = create_app(
        config or ServerConfig(),
        registry=registry,
        client_config=ClientConfig(api_key="test-key", model="gemini-test", stream=stream),
        transport=httpx.MockTransport(endpoint),
    )
    return TestClient(app)


class TestServerConfig:
    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = ServerConfig()
        assert config.port == 8000
        assert config.cors_origins == ["*"]
        assert config.tools is None

    def test_from_env(self):
        env = {
            "TOOLSTREAM_PORT": "9999",
            "TOOLSTREAM_DEBUG": "true",
            "TOOLSTREAM_CORS_ORIGINS": "https://a.example,https://b.example",
            "TOOLSTREAM_TOOLS": "myapp.tools:registry",
        }
        with patch.dict(os.environ, env, clear=True):
            config = ServerConfig.from_env()
        assert config.port == 9999
        assert config.debug is True
        assert config.cors_origins == ["https://a.example", "https://b.example"]
        assert config.tools == "myapp.tools:registry"


class TestBasicEndpoints:
    def test_health(self, registry):
        with make_client(registry, ModelEndpoint()) as client:
            response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_list_tools(self, registry):
        with make_client(registry, ModelEndpoint()) as client:
            response = client.get("/v1/tools")
        tools = response.json()["tools"]
        assert [tool["name"] for tool in tools] == ["get_time"]
        assert tools[0]["parameters"]["required"] == ["city"]


class TestStreamEndpoint:
    """Tests for POST /v1/completions/stream."""

    def test_plain_stream(self, registry):
        endpoint = ModelEndpoint([reply_payload({"text": "Hi"}), reply_payload({"text": " there!"})])
        with make_client(registry, endpoint) as client:
            response = client.post(
                "/v1/completions/stream",
                json={"contents": [{"role": "user", "parts": [{"text": "Hello!"}]}]},
            )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = parse_sse(response.text)
        assert [event for event, _ in events] == ["message", "message", "complete"]
        assert json.loads(events[0][1])["candidates"][0]["content"]["parts"] == [{"text": "Hi"}]
        assert json.loads(events[-1][1]) == {"status": "done"}

    def test_tool_round(self, registry):
        endpoint = ModelEndpoint(
            [reply_payload({"functionCall": {"name": "get_time", "args": {"city": "Paris"}}})],
            [reply_payload({"text": "It is noon."})],
        )
        with make_client(registry, endpoint) as client:
            response = client.post(
                "/v1/completions/stream",
                json={
                    "contents": [{"role": "user", "parts": [{"text": "Time in Paris?"}]}],
                    "tools": ["get_time"],
                },
            )

        events = parse_sse(response.text)
        assert [event for event, _ in events] == [
            "message",
            "executed_tools",
            "message",
            "complete",
        ]
        assert len(endpoint.requests) == 2
        second = endpoint.requests[1]
        assert second["tools"][0]["functionDeclarations"][0]["name"] == "get_time"
        assert second["contents"][-1]["parts"][0]["functionResponse"] == {
            "name": "get_time",
            "response": {"result": {"time": "12:00", "city": "Paris"}},
        }

    def test_remote_error_becomes_error_event(self, registry):
        endpoint = ModelEndpoint(
            httpx.Response(400, json={"error": {"code": 400, "message": "API key not valid"}})
        )
        with make_client(registry, endpoint) as client:
            response = client.post(
                "/v1/completions/stream",
                json={"contents": [{"role": "user", "parts": [{"text": "Hello!"}]}]},
            )

        events = parse_sse(response.text)
        assert events == [
            ("error", json.dumps({"status": "error", "error": "API key not valid"}))
        ]

    def test_invalid_conversation_rejected(self, registry):
        endpoint = ModelEndpoint()
        with make_client(registry, endpoint) as client:
            response = client.post(
                "/v1/completions/stream",
                json={"contents": [{"role": "robot", "parts": [{"text": "Hi"}]}]},
            )

        assert response.status_code == 400
        assert "role" in response.json()["detail"]["message"]
        assert endpoint.requests == []

    def test_unknown_tool_rejected(self, registry):
        with make_client(registry, ModelEndpoint()) as client:
            response = client.post(
                "/v1/completions/stream",
                json={
                    "contents": [{"role": "user", "parts": [{"text": "Hi"}]}],
                    "tools": ["lookup_weather"],
                },
            )

        assert response.status_code == 400
        assert response.json()["detail"]["message"] == "tool not found: lookup_weather"

    def test_missing_contents_is_unprocessable(self, registry):
        with make_client(registry, ModelEndpoint()) as client:
            response = client.post("/v1/completions/stream", json={})
        assert response.status_code == 422


class TestCompleteEndpoint:
    """Tests for POST /v1/completions."""

    def test_non_streamed_client(self, registry):
        endpoint = ModelEndpoint(
            [reply_payload({"functionCall": {"name": "get_time", "args": {"city": "Oslo"}}})],
            [reply_payload({"text": "Noon in Oslo."})],
        )
        with make_client(registry, endpoint, stream=False) as client:
            response = client.post(
                "/v1/completions",
                json={
                    "contents": [{"role": "user", "parts": [{"text": "Time in Oslo?"}]}],
                    "tools": ["get_time"],
                    "temperature": 0.1,
                },
            )

        assert response.status_code == 200
        assert response.json() == {
            "status": "done",
            "text": "Noon in Oslo.",
            "rounds": 1,
            "error": None,
        }
        assert endpoint.requests[0]["generationConfig"] == {"temperature": 0.1}

    def test_round_limit(self, registry):
        endpoint = ModelEndpoint(
            [reply_payload({"functionCall": {"name": "get_time", "args": {"city": "Oslo"}}})]
        )
        with make_client(registry, endpoint) as client:
            response = client.post(
                "/v1/completions",
                json={
                    "contents": [{"role": "user", "parts": [{"text": "Time?"}]}],
                    "tools": ["get_time"],
                },
            )

        body = response.json()
        assert body["status"] == "error"
        assert body["error"] == "Maximum number of tool calls reached (10)"
        assert body["rounds"] == 10
        assert len(endpoint.requests) == 10


class TestRequestValidation:
    def test_malformed_tool_schema_rejected(self, registry):
        registry.register(
            ToolDefinition(
                name="get_forecast",
                description="Get the forecast.",
                parameters={
                    "type": "object",
                    "properties": {"city": {"type": ["string", "null"]}},
                    "required": [["city"]],
                },
            ),
            handler=lambda args: {},
        )
        endpoint = ModelEndpoint()
        with make_client(registry, endpoint) as client:
            response = client.post(
                "/v1/completions/stream",
                json={
                    "contents": [{"role": "user", "parts": [{"text": "Forecast?"}]}],
                    "tools": ["get_forecast"],
                },
            )

        assert response.status_code == 400
        errors = response.json()["detail"]["errors"]
        assert "parameters invalid parameter type: ['string', 'null']" in errors
        assert "parameters required fields must be strings" in errors
        assert endpoint.requests == []


class TestOrchestrationTask:
    def test_task_failure_is_logged(self, registry, caplog):
        async def failing_run(self, contents, options=None, on_complete=None):
            await self.channel.close()
            raise RuntimeError("event delivery failed")

        with patch.object(StreamOrchestrator, "stream_completion", failing_run):
            with caplog.at_level(logging.ERROR, logger="toolstream.server"):
                with make_client(registry, ModelEndpoint()) as client:
                    response = client.post(
                        "/v1/completions/stream",
                        json={"contents": [{"role": "user", "parts": [{"text": "Hello!"}]}]},
                    )

        assert response.status_code == 200
        assert parse_sse(response.text) == []
        records = [r for r in caplog.records if r.name == "toolstream.server"]
        assert any("event delivery failed" in r.getMessage() for r in records)


class TestDebugFlag:
    def test_debug_passed_to_app(self, registry):
        from toolstream.server.app import create_app

        app = create_app(
            ServerConfig(debug=True),
            registry=registry,
            client_config=ClientConfig(api_key="test-key"),
        )
        assert app.debug is True
