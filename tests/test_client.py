"""
Tests for livecanvas.client (OllamaClient over httpx.MockTransport).
"""

import json

import httpx
import pytest

from livecanvas.exceptions import BackendUnavailableError, StreamRequestError

from .conftest import mock_client, ndjson

TAGS = {
    "models": [
        {
            "name": "qwen2.5-coder:7b",
            "details": {"family": "qwen2", "parameter_size": "7.6B", "quantization_level": "Q4_K_M"},
        },
        {"name": "llama3.2:latest", "details": {"family": "llama"}},
        {"details": {"family": "nameless"}},
    ]
}


def refuse(request):
    raise httpx.ConnectError("connection refused", request=request)


class TestDiscovery:
    async def test_list_models_sorted_with_metadata(self):
        def handler(request):
            assert request.url.path == "/api/tags"
            return httpx.Response(200, json=TAGS)

        async with mock_client(handler) as client:
            models = await client.list_models()

        assert [m.name for m in models] == ["llama3.2:latest", "qwen2.5-coder:7b"]
        assert models[1].meta == "qwen2 · 7.6B · Q4_K_M"
        assert models[0].meta == "llama"

    async def test_list_models_empty_on_error(self, caplog):
        async with mock_client(lambda request: httpx.Response(500)) as client:
            assert await client.list_models() == []
        async with mock_client(refuse) as client:
            assert await client.list_models() == []
        assert "Could not enumerate models" in caplog.text

    async def test_list_resident(self):
        def handler(request):
            assert request.url.path == "/api/ps"
            return httpx.Response(200, json={"models": [{"name": "llama3.2:latest"}, {"size": 1}]})

        async with mock_client(handler) as client:
            assert await client.list_resident() == ["llama3.2:latest"]

    async def test_list_resident_tolerates_failures(self):
        async with mock_client(lambda request: httpx.Response(404)) as client:
            assert await client.list_resident() == []
        async with mock_client(lambda request: httpx.Response(200, json={"models": None})) as client:
            assert await client.list_resident() == []
        async with mock_client(refuse) as client:
            assert await client.list_resident() == []

    async def test_ready_check(self):
        async with mock_client(lambda request: httpx.Response(200)) as client:
            assert await client.is_ready() is True
            await client.ensure_ready()

    async def test_ensure_ready_raises_when_unreachable(self):
        async with mock_client(refuse) as client:
            assert await client.is_ready() is False
            with pytest.raises(BackendUnavailableError, match="ollama.test"):
                await client.ensure_ready()


class TestGenerate:
    async def test_generate_once_payload(self):
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            return httpx.Response(200, json={"response": "pong", "done": True})

        async with mock_client(handler) as client:
            text = await client.generate_once("m", "ping", {"num_predict": 1}, keep_alive="30m")

        assert text == "pong"
        assert seen == {
            "model": "m",
            "prompt": "ping",
            "stream": False,
            "keep_alive": "30m",
            "options": {"num_predict": 1},
        }

    async def test_generate_once_raises_on_error_status(self):
        async with mock_client(lambda request: httpx.Response(503)) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.generate_once("m", "ping", {})

    async def test_stream_generate_yields_body_text(self):
        body = ndjson("<html>", "</html>")
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            return httpx.Response(200, text=body)

        async with mock_client(handler) as client:
            segments = [s async for s in client.stream_generate("m", "p", {"num_ctx": 2048})]

        assert "".join(segments) == body
        assert seen["stream"] is True
        assert seen["options"] == {"num_ctx": 2048}

    async def test_stream_generate_non_2xx(self):
        async with mock_client(lambda request: httpx.Response(404, json={"error": "no model"})) as client:
            with pytest.raises(StreamRequestError) as excinfo:
                async for _ in client.stream_generate("missing", "p", {}):
                    pass

        assert excinfo.value.status_code == 404
        assert str(excinfo.value) == "Streaming response not available (status 404)"

    async def test_stream_generate_transport_error(self):
        async with mock_client(refuse) as client:
            with pytest.raises(StreamRequestError, match="Streaming request failed"):
                async for _ in client.stream_generate("m", "p", {}):
                    pass
