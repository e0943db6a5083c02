"""
Shared fakes for the edit engine tests.
"""

import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx

from edit_engine.backend_selector import BackendSelector
from edit_engine.batch_pipeline import BatchPipelineOrchestrator
from edit_engine.config import EngineConfig
from edit_engine.errors import BackendUnavailable, InvocationError
from edit_engine.local_engine import BinarySource, ResolvedBinary
from edit_engine.operation_catalog import CompiledInvocation, MediaInfo, OperationKind
from edit_engine.orchestrator import MediaEditEngine
from edit_engine.remote_engine import RemoteEngineAdapter
from storage import ArtifactLifecycleManager, MemoryResultStorage

REMOTE_URL = "http://remote-engine.test"
SOURCE_URL = "http://media.test/source.mp4"
SOURCE_BYTES = b"source-video-bytes"


class FakeLocalEngine:
    """Stands in for LocalEngineAdapter; each stage appends its kind to the file"""

    def __init__(
        self,
        media_info: Optional[MediaInfo] = None,
        fail_on: Optional[OperationKind] = None,
    ):
        self.media_info = media_info or MediaInfo(duration=30.0, width=1920, height=1080, has_audio=True)
        self.fail_on = fail_on
        self.calls: List[CompiledInvocation] = []
        self.probes: List[str] = []
        self.inputs_seen: List[str] = []

    async def run(self, invocation: CompiledInvocation, input_path: str, output_path: str):
        self.calls.append(invocation)
        self.inputs_seen.append(input_path)
        if invocation.operation == self.fail_on:
            raise InvocationError("FFmpeg process exited with code 1: boom", returncode=1, stderr="boom")
        data = Path(input_path).read_bytes()
        Path(output_path).write_bytes(data + b"|" + invocation.operation.value.encode())
        return "", ""

    async def probe(self, path: str) -> MediaInfo:
        self.probes.append(path)
        return self.media_info


class FakeResolver:
    def __init__(self, available: bool = True):
        self.available = available
        self.calls = 0

    async def resolve(self) -> ResolvedBinary:
        self.calls += 1
        if not self.available:
            raise BackendUnavailable("no ffmpeg")
        return ResolvedBinary(path="/fake/ffmpeg", source=BinarySource.SYSTEM_PATH, version="ffmpeg version test")


class RecordingHandler:
    """httpx.MockTransport handler with per-path canned responses"""

    def __init__(self, routes: Optional[Dict[str, Callable[[httpx.Request], httpx.Response]]] = None):
        self.routes = routes or {}
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = f"{request.method} {request.url.host}{request.url.path}"
        handler = self.routes.get(key)
        if handler is None:
            return httpx.Response(404, json={"error": f"no route for {key}"})
        return handler(request)

    def paths(self) -> List[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]

    def json_bodies(self, path: str) -> List[Any]:
        return [json.loads(r.content) for r in self.requests if r.url.path == path]


def healthy(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"status": "healthy", "ffmpeg_available": True, "version": "0.1.0"})


def unhealthy(request: httpx.Request) -> httpx.Response:
    return httpx.Response(503, json={"status": "down"})


def source_video(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, content=SOURCE_BYTES)


def remote_ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={
        "success": True,
        "video_url": "http://remote-engine.test/results/out.mp4",
        "error": None,
        "processing_time_ms": 42,
        "operation": json.loads(request.content).get("operation", "batch"),
    })


def remote_result(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, content=b"remote-result-bytes")


def default_routes(health=healthy) -> Dict[str, Callable[[httpx.Request], httpx.Response]]:
    return {
        "GET remote-engine.test/health": health,
        "POST remote-engine.test/process": remote_ok,
        "POST remote-engine.test/batch": remote_ok,
        "GET remote-engine.test/results/out.mp4": remote_result,
        "GET media.test/source.mp4": source_video,
    }


def make_config(tmp_path: Path, **overrides) -> EngineConfig:
    values = dict(
        work_dir=tmp_path / "work",
        remote_url=REMOTE_URL,
        remote_enabled=True,
        storage_backend="memory",
        download_dir=tmp_path / "download",
        project_root=tmp_path,
        dependency_dir=tmp_path / "deps",
    )
    values.update(overrides)
    return EngineConfig(**values)


def make_engine(
    tmp_path: Path,
    handler: Optional[RecordingHandler] = None,
    local: Optional[FakeLocalEngine] = None,
    resolver: Optional[FakeResolver] = None,
    **config_overrides,
):
    """Fully wired MediaEditEngine over fakes; returns (engine, handler, local, storage)"""
    handler = handler or RecordingHandler(default_routes())
    local = local or FakeLocalEngine()
    resolver = resolver or FakeResolver()
    config = make_config(tmp_path, **config_overrides)
    transport = httpx.MockTransport(handler)
    storage = MemoryResultStorage()

    remote = RemoteEngineAdapter(REMOTE_URL, transport=transport)
    artifacts = ArtifactLifecycleManager(
        storage, config.work_dir, allow_local_sources=config.allow_local_sources, transport=transport
    )
    selector = BackendSelector(config, remote, resolver)

    async def local_provider():
        await resolver.resolve()
        return local

    pipeline = BatchPipelineOrchestrator(artifacts, remote, local_provider)
    engine = MediaEditEngine(config, selector, pipeline)
    return engine, handler, local, storage
