"""
Batch pipeline over a fake local engine and a mocked remote service.
"""

import asyncio

import httpx

from edit_engine.backend_selector import Backend
from edit_engine.batch_pipeline import BatchPipelineOrchestrator, JobStatus, ProcessingJob, remote_failure
from edit_engine.errors import InvocationError, ResolutionError
from edit_engine.operation_catalog import OperationKind, default_catalog
from edit_engine.remote_engine import RemoteEngineAdapter, RemoteProcessResponse
from storage import ArtifactLifecycleManager, MediaReference, MemoryResultStorage

from tests.helpers import (
    REMOTE_URL,
    SOURCE_BYTES,
    SOURCE_URL,
    FakeLocalEngine,
    RecordingHandler,
    default_routes,
)

SOURCE = MediaReference(url=SOURCE_URL)


def build(tmp_path, local=None, handler=None):
    handler = handler or RecordingHandler(default_routes())
    local = local or FakeLocalEngine()
    transport = httpx.MockTransport(handler)
    storage = MemoryResultStorage()
    artifacts = ArtifactLifecycleManager(storage, tmp_path / "work", transport=transport)
    remote = RemoteEngineAdapter(REMOTE_URL, transport=transport)

    async def provider():
        return local

    return BatchPipelineOrchestrator(artifacts, remote, provider), local, handler, storage


def op(kind, order=0, **parameters):
    return default_catalog.descriptor(kind, parameters, order)


class TestLocalBatch:

    def test_stages_chain_in_order(self, tmp_path):
        pipeline, local, _, storage = build(tmp_path)
        ops = [
            op("applyFilter", order=2, filter="cinematic"),
            op("adjustBrightness", order=1, brightness=10),
        ]
        result = asyncio.run(pipeline.run_batch(SOURCE, ops, Backend.LOCAL))

        assert result.success
        assert result.operations_applied == 2
        assert result.backend == Backend.LOCAL
        assert [call.operation for call in local.calls] == [
            OperationKind.ADJUST_BRIGHTNESS,
            OperationKind.APPLY_FILTER,
        ]
        published = asyncio.run(storage.read(result.result_url))
        assert published == SOURCE_BYTES + b"|adjustBrightness|applyFilter"

    def test_stage_reads_previous_output(self, tmp_path):
        pipeline, local, _, _ = build(tmp_path)
        ops = [op("adjustBrightness", order=i, brightness=i) for i in range(1, 4)]
        asyncio.run(pipeline.run_batch(SOURCE, ops, Backend.LOCAL))
        assert local.inputs_seen[0].split("/")[-1].startswith("input_")
        assert all(p.split("/")[-1].startswith("output_") for p in local.inputs_seen[1:])

    def test_equal_orders_keep_request_order(self, tmp_path):
        pipeline, local, _, _ = build(tmp_path)
        ops = [op("stabilizeVideo"), op("normalizeAudio"), op("enhanceColors")]
        asyncio.run(pipeline.run_batch(SOURCE, ops, Backend.LOCAL))
        assert [c.operation.value for c in local.calls] == ["stabilizeVideo", "normalizeAudio", "enhanceColors"]

    def test_failure_reports_index_and_stops(self, tmp_path):
        local = FakeLocalEngine(fail_on=OperationKind.APPLY_FILTER)
        pipeline, local, _, storage = build(tmp_path, local=local)
        ops = [
            op("adjustBrightness", order=1, brightness=10),
            op("applyFilter", order=2, filter="sepia"),
            op("normalizeAudio", order=3),
        ]
        result = asyncio.run(pipeline.run_batch(SOURCE, ops, Backend.LOCAL))

        assert not result.success
        assert result.error_kind == "InvocationError"
        assert result.failed_operation_index == 1
        assert result.operations_applied == 1
        assert len(local.calls) == 2
        assert storage.objects == {}

    def test_temps_released_on_success_and_failure(self, tmp_path):
        pipeline, _, _, _ = build(tmp_path)
        asyncio.run(pipeline.run_batch(SOURCE, [op("stabilizeVideo"), op("normalizeAudio")], Backend.LOCAL))
        assert list((tmp_path / "work").iterdir()) == []

        failing, _, _, _ = build(tmp_path, local=FakeLocalEngine(fail_on=OperationKind.NORMALIZE_AUDIO))
        asyncio.run(failing.run_batch(SOURCE, [op("stabilizeVideo"), op("normalizeAudio")], Backend.LOCAL))
        assert list((tmp_path / "work").iterdir()) == []

    def test_probe_only_for_operations_that_need_it(self, tmp_path):
        pipeline, local, _, _ = build(tmp_path)
        ops = [op("adjustBrightness", order=1, brightness=5), op("cropToAspectRatio", order=2, ratio="9:16")]
        result = asyncio.run(pipeline.run_batch(SOURCE, ops, Backend.LOCAL))
        assert result.success
        assert len(local.probes) == 1
        assert local.calls[1].filter_expression == "crop=606:1080:657:0"

    def test_unreachable_source_fails_before_any_stage(self, tmp_path):
        pipeline, local, _, _ = build(tmp_path)
        result = asyncio.run(pipeline.run_batch(
            MediaReference(url="http://media.test/missing.mp4"), [op("stabilizeVideo")], Backend.LOCAL))
        assert result.error_kind == "ResolutionError"
        assert result.failed_operation_index is None
        assert local.calls == []


class TestRemote:

    def test_single_uses_process_and_persists_result(self, tmp_path):
        pipeline, local, handler, storage = build(tmp_path)
        result = asyncio.run(pipeline.run_single(SOURCE, op("adjustBrightness", brightness=10), Backend.REMOTE))

        assert result.success and result.backend == Backend.REMOTE
        assert handler.json_bodies("/process") == [{
            "video_url": SOURCE_URL,
            "operation": "adjustBrightness",
            "parameters": {"brightness": 10},
        }]
        assert asyncio.run(storage.read(result.result_url)) == b"remote-result-bytes"
        assert local.calls == []

    def test_batch_sends_sorted_wire_operations(self, tmp_path):
        pipeline, _, handler, _ = build(tmp_path)
        ops = [op("applyFilter", order=2, filter="cinematic"), op("adjustBrightness", order=1, brightness=10)]
        result = asyncio.run(pipeline.run_batch(SOURCE, ops, Backend.REMOTE))

        assert result.success and result.operations_applied == 2
        assert handler.json_bodies("/batch")[0]["operations"] == [
            {"type": "adjustBrightness", "parameters": {"brightness": 10}, "order": 1},
            {"type": "applyFilter", "parameters": {"filter": "cinematic", "intensity": 1.0}, "order": 2},
        ]

    def test_remote_failure_body(self, tmp_path):
        routes = default_routes()
        routes["POST remote-engine.test/batch"] = lambda r: httpx.Response(200, json={
            "success": False,
            "error": "Failed to process batch operations: ffmpeg exited",
            "processing_time_ms": 3,
            "operation": "batch",
        })
        pipeline, _, _, _ = build(tmp_path, handler=RecordingHandler(routes))
        result = asyncio.run(pipeline.run_batch(SOURCE, [op("adjustBrightness", brightness=1)], Backend.REMOTE))
        assert not result.success
        assert result.error_kind == "InvocationError"
        assert "ffmpeg exited" in result.message

    def test_remote_http_error_is_network_error(self, tmp_path):
        routes = default_routes()
        routes["POST remote-engine.test/process"] = lambda r: httpx.Response(500)
        pipeline, _, _, _ = build(tmp_path, handler=RecordingHandler(routes))
        result = asyncio.run(pipeline.run_single(SOURCE, op("adjustBrightness", brightness=1), Backend.REMOTE))
        assert result.error_kind == "NetworkError"


class TestJobModel:

    def test_remote_failure_mapping(self):
        download = RemoteProcessResponse(success=False, error="Failed to download video: 404")
        other = RemoteProcessResponse(success=False, error="Failed to upload result")
        assert isinstance(remote_failure(download), ResolutionError)
        assert isinstance(remote_failure(other), InvocationError)

    def test_job_status_transitions(self):
        job = ProcessingJob(source_ref=SOURCE, operations=[], backend=Backend.LOCAL)
        assert job.status == JobStatus.PENDING
        result = job.completed("memory://processed/x.mp4", 1)
        assert job.status == JobStatus.COMPLETED
        assert result.success and result.result_url == "memory://processed/x.mp4"
        failed = job.failed(InvocationError("boom"), failed_operation_index=0)
        assert job.status == JobStatus.FAILED
        assert failed.error_kind == "InvocationError" and failed.failed_operation_index == 0
