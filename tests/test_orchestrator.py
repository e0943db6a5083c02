"""
MediaEditEngine facade: end-to-end over fakes.
"""

import asyncio

import httpx

from edit_engine.backend_selector import Backend
from edit_engine.batch_pipeline import EngineResult
from edit_engine.operation_catalog import OperationKind, default_catalog

from tests.helpers import (
    SOURCE_URL,
    FakeLocalEngine,
    FakeResolver,
    RecordingHandler,
    default_routes,
    make_engine,
    unhealthy,
)


def op(kind, order=0, **parameters):
    return default_catalog.descriptor(kind, parameters, order)


class TestExecuteOperation:

    def test_remote_path(self, tmp_path):
        engine, handler, local, _ = make_engine(tmp_path)
        result = asyncio.run(engine.execute_operation(SOURCE_URL, op("trimVideo", startTime=5, endTime=15)))

        assert result.success
        assert result.backend == Backend.REMOTE
        assert result.operations_applied == 1
        assert "POST /process" in handler.paths()
        assert local.calls == []

    def test_health_failure_falls_back_with_same_result_shape(self, tmp_path):
        remote_engine, _, _, _ = make_engine(tmp_path / "a")
        remote = asyncio.run(remote_engine.execute_operation(SOURCE_URL, op("adjustBrightness", brightness=10)))

        def refuse(request):
            if request.url.path == "/health":
                raise httpx.ConnectError("connection refused", request=request)
            return RecordingHandler(default_routes())(request)

        local_engine, _, local, _ = make_engine(tmp_path / "b", handler=refuse)
        local_result = asyncio.run(local_engine.execute_operation(SOURCE_URL, op("adjustBrightness", brightness=10)))

        assert remote.success and local_result.success
        assert remote.backend == Backend.REMOTE
        assert local_result.backend == Backend.LOCAL
        assert set(remote.model_dump()) == set(local_result.model_dump())
        assert [c.operation for c in local.calls] == [OperationKind.ADJUST_BRIGHTNESS]

    def test_invalid_parameters_rejected_before_any_io(self, tmp_path):
        resolver = FakeResolver()
        engine, handler, local, _ = make_engine(tmp_path, resolver=resolver)
        descriptor = default_catalog.descriptor("adjustBrightness", {"brightness": 150})
        result = asyncio.run(engine.execute_operation(SOURCE_URL, descriptor))

        assert not result.success
        assert result.error_kind == "ValidationError"
        assert handler.requests == []
        assert local.calls == []
        assert resolver.calls == 0

    def test_no_backend_available(self, tmp_path):
        engine, _, _, _ = make_engine(
            tmp_path,
            handler=RecordingHandler(default_routes(health=unhealthy)),
            resolver=FakeResolver(available=False),
        )
        result = asyncio.run(engine.execute_operation(SOURCE_URL, op("adjustBrightness", brightness=10)))
        assert result.error_kind == "BackendUnavailable"
        assert isinstance(result, EngineResult)

    def test_forced_local_never_probes_remote(self, tmp_path):
        engine, handler, local, _ = make_engine(tmp_path)
        pinned = engine.pinned(Backend.LOCAL)
        result = asyncio.run(pinned.execute_operation(SOURCE_URL, op("adjustBrightness", brightness=10)))
        assert result.success and result.backend == Backend.LOCAL
        assert "GET /health" not in handler.paths()


class TestExecuteBatch:

    def test_mixed_capability_batch_runs_locally(self, tmp_path):
        engine, handler, local, _ = make_engine(tmp_path)
        ops = [op("trimVideo", order=1, startTime=0, endTime=10), op("rotateVideo", order=2, degrees=90)]
        result = asyncio.run(engine.execute_batch(SOURCE_URL, ops))

        assert result.success and result.backend == Backend.LOCAL
        assert result.operations_applied == 2
        assert "POST /batch" not in handler.paths()

    def test_empty_batch_rejected(self, tmp_path):
        engine, _, _, _ = make_engine(tmp_path)
        result = asyncio.run(engine.execute_batch(SOURCE_URL, []))
        assert result.error_kind == "ValidationError"

    def test_failed_stage_index_surfaces(self, tmp_path):
        engine, _, _, _ = make_engine(tmp_path, local=FakeLocalEngine(fail_on=OperationKind.ROTATE))
        ops = [op("stabilizeVideo", order=1), op("rotateVideo", order=2, degrees=180)]
        result = asyncio.run(engine.execute_batch(SOURCE_URL, ops))
        assert not result.success
        assert result.failed_operation_index == 1
        assert result.error_kind == "InvocationError"
        assert list((tmp_path / "work").iterdir()) == []


class TestApplyStyle:

    def test_cinematic_runs_two_operations_brightness_first(self, tmp_path):
        engine, handler, _, _ = make_engine(tmp_path)
        result = asyncio.run(engine.apply_style(SOURCE_URL, "cinematic"))

        assert result.success
        assert result.operations_applied == 2
        operations = handler.json_bodies("/batch")[0]["operations"]
        assert [o["type"] for o in operations] == ["adjustBrightness", "applyFilter"]
        assert [o["order"] for o in operations] == [1, 2]

    def test_local_style_runs_in_order(self, tmp_path):
        engine, _, local, _ = make_engine(tmp_path, remote_enabled=False)
        result = asyncio.run(engine.apply_style(SOURCE_URL, "cinematic"))
        assert result.success and result.backend == Backend.LOCAL
        assert [c.operation for c in local.calls] == [OperationKind.ADJUST_BRIGHTNESS, OperationKind.APPLY_FILTER]

    def test_unknown_style_touches_nothing(self, tmp_path):
        resolver = FakeResolver()
        engine, handler, local, _ = make_engine(tmp_path, resolver=resolver)
        result = asyncio.run(engine.apply_style(SOURCE_URL, "noir"))

        assert not result.success
        assert result.error_kind == "UnsupportedOperation"
        assert handler.requests == []
        assert local.calls == []
        assert resolver.calls == 0

    def test_social_media_is_local_only(self, tmp_path):
        engine, handler, local, _ = make_engine(tmp_path)
        result = asyncio.run(engine.apply_style(SOURCE_URL, "social-media"))
        assert result.success and result.backend == Backend.LOCAL
        assert len(local.calls) == 3
        assert "GET /health" not in handler.paths()
