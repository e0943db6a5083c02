"""
Remote processing service client (httpx.MockTransport).
"""

import asyncio

import httpx
import pytest

from edit_engine.errors import NetworkError
from edit_engine.remote_engine import RemoteEngineAdapter

from tests.helpers import REMOTE_URL, RecordingHandler, default_routes


def adapter_for(handler) -> RemoteEngineAdapter:
    return RemoteEngineAdapter(REMOTE_URL, transport=httpx.MockTransport(handler))


class TestHealthCheck:

    def test_legacy_ffmpeg_field(self):
        health = asyncio.run(adapter_for(RecordingHandler(default_routes())).health_check())
        assert health.available and health.engine_available and health.capable
        assert health.healthy
        assert health.version == "0.1.0"

    def test_engine_available_field(self):
        routes = {"GET remote-engine.test/health": lambda r: httpx.Response(
            200, json={"status": "healthy", "engine_available": False, "version": "2"})}
        health = asyncio.run(adapter_for(RecordingHandler(routes)).health_check())
        assert health.available
        assert not health.healthy

    def test_non_2xx_is_unavailable(self):
        routes = {"GET remote-engine.test/health": lambda r: httpx.Response(500)}
        health = asyncio.run(adapter_for(RecordingHandler(routes)).health_check())
        assert not health.available and not health.healthy

    def test_transport_error_never_raises(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        health = asyncio.run(adapter_for(refuse).health_check())
        assert health.status == "unavailable"
        assert not health.healthy


class TestProcess:

    def test_process_posts_contract_body(self):
        handler = RecordingHandler(default_routes())
        response = asyncio.run(adapter_for(handler).process(
            "http://media.test/source.mp4", "adjustBrightness", {"brightness": 10}))
        assert response.success
        assert response.processing_time_ms == 42
        assert handler.json_bodies("/process") == [{
            "video_url": "http://media.test/source.mp4",
            "operation": "adjustBrightness",
            "parameters": {"brightness": 10},
        }]

    def test_batch_posts_operations(self):
        handler = RecordingHandler(default_routes())
        operations = [
            {"type": "adjustBrightness", "parameters": {"brightness": 10}, "order": 1},
            {"type": "applyFilter", "parameters": {"filter": "cinematic"}, "order": 2},
        ]
        response = asyncio.run(adapter_for(handler).process_batch("http://media.test/source.mp4", operations))
        assert response.operation == "batch"
        assert handler.json_bodies("/batch")[0]["operations"] == operations

    def test_non_2xx_raises_network_error(self):
        routes = {"POST remote-engine.test/process": lambda r: httpx.Response(502)}
        with pytest.raises(NetworkError) as exc:
            asyncio.run(adapter_for(RecordingHandler(routes)).process("http://x/y.mp4", "trimVideo", {}))
        assert exc.value.status_code == 502

    def test_transport_error_raises_network_error(self):
        def refuse(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(NetworkError):
            asyncio.run(adapter_for(refuse).process_batch("http://x/y.mp4", []))
