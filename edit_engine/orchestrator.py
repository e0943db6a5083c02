"""
================================================================================
EDIT ENGINE - Orchestrator
================================================================================
Public entry points used by the chat tools, the HTTP API and the CLI:

  execute_operation(source, descriptor)
  execute_batch(source, descriptors)
  apply_style(source, style_id)

Each call validates every descriptor, selects a backend, runs the pipeline
and returns an EngineResult. Engine failures never escape as exceptions.

Author: Barrios A2I
Version: 1.0.0
================================================================================
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx

from storage import ArtifactLifecycleManager, DurableStorage, MediaReference, get_durable_storage

from .backend_selector import Backend, BackendSelector
from .batch_pipeline import BatchPipelineOrchestrator, EngineResult
from .config import EngineConfig
from .errors import BackendUnavailable, MediaEngineError, ValidationError
from .local_engine import BinaryResolver
from .metrics import EDIT_LATENCY, EDIT_REQUESTS
from .operation_catalog import OperationCatalog, OperationDescriptor, default_catalog
from .remote_engine import RemoteEngineAdapter, create_remote_engine
from .style_presets import StylePresetExpander

logger = logging.getLogger("mediaedit.orchestrator")

SourceRef = Union[MediaReference, str]


class MediaEditEngine:
    """
    Facade over selection, compilation, execution and publication.

    Args:
        force_backend: pin every request to one backend (the processing-service
            routes pin LOCAL so a deployment never calls itself)
    """

    def __init__(
        self,
        config: EngineConfig,
        selector: BackendSelector,
        pipeline: BatchPipelineOrchestrator,
        catalog: OperationCatalog = default_catalog,
        styles: Optional[StylePresetExpander] = None,
        force_backend: Optional[Backend] = None,
    ):
        self.config = config
        self.selector = selector
        self.pipeline = pipeline
        self.catalog = catalog
        self.styles = styles or StylePresetExpander()
        self.force_backend = force_backend

    def pinned(self, backend: Backend) -> "MediaEditEngine":
        """Same engine, every request forced onto ``backend``"""
        return MediaEditEngine(
            config=self.config,
            selector=self.selector,
            pipeline=self.pipeline,
            catalog=self.catalog,
            styles=self.styles,
            force_backend=backend,
        )

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def execute_operation(self, source: SourceRef, descriptor: OperationDescriptor) -> EngineResult:
        return await self._execute("operation", source, [descriptor], single=True)

    async def execute_batch(self, source: SourceRef, descriptors: Sequence[OperationDescriptor]) -> EngineResult:
        return await self._execute("batch", source, list(descriptors), single=False)

    async def apply_style(self, source: SourceRef, style_id: str) -> EngineResult:
        started = time.monotonic()
        try:
            descriptors = self.styles.expand(style_id)
        except MediaEngineError as e:
            EDIT_REQUESTS.labels(type="style", status="failed").inc()
            logger.warning(f"[MediaEditEngine] Style rejected: {e.message}")
            return EngineResult(
                success=False,
                duration_ms=int((time.monotonic() - started) * 1000),
                message=e.message,
                error_kind=e.error_kind,
            )
        return await self._execute("style", source, descriptors, single=False)

    async def health(self) -> Dict[str, Any]:
        remote = await self.selector.remote_health()
        local: Dict[str, Any] = {"available": False}
        try:
            binary = await self.selector.resolver.resolve()
            local = {
                "available": True,
                "path": binary.path,
                "source": binary.source.value,
                "version": binary.version,
            }
        except BackendUnavailable as e:
            local["error"] = e.message
        return {
            "remote": remote.model_dump(),
            "local": local,
            "force_backend": self.force_backend.value if self.force_backend else None,
        }

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def _execute(
        self,
        request_type: str,
        source: SourceRef,
        descriptors: List[OperationDescriptor],
        single: bool,
    ) -> EngineResult:
        started = time.monotonic()
        source_ref = source if isinstance(source, MediaReference) else MediaReference(url=source)
        backend: Optional[Backend] = None

        try:
            if not descriptors:
                raise ValidationError("At least one operation is required")
            # Reject bad input before anything touches the network or a subprocess
            self.catalog.validate_all(descriptors)

            backend = self.force_backend or await self.selector.select(descriptors, source_ref.url)
            if single:
                result = await self.pipeline.run_single(source_ref, descriptors[0], backend)
            else:
                result = await self.pipeline.run_batch(source_ref, descriptors, backend)
        except MediaEngineError as e:
            logger.warning(f"[MediaEditEngine] {request_type} failed: {e.error_kind}: {e.message}")
            result = EngineResult(
                success=False,
                message=e.message,
                error_kind=e.error_kind,
                backend=backend,
            )
        except Exception as e:
            logger.exception(f"[MediaEditEngine] Unexpected error in {request_type}")
            result = EngineResult(
                success=False,
                message=f"Unexpected engine error: {e}",
                error_kind="InternalError",
                backend=backend,
            )

        result.duration_ms = int((time.monotonic() - started) * 1000)
        EDIT_REQUESTS.labels(type=request_type, status="success" if result.success else "failed").inc()
        EDIT_LATENCY.labels(
            type=request_type,
            backend=result.backend.value if result.backend else "none",
        ).observe(time.monotonic() - started)
        return result


# =============================================================================
# FACTORY FUNCTION
# =============================================================================

def create_edit_engine(
    config: Optional[EngineConfig] = None,
    storage: Optional[DurableStorage] = None,
    remote: Optional[RemoteEngineAdapter] = None,
    resolver: Optional[BinaryResolver] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    catalog: OperationCatalog = default_catalog,
) -> MediaEditEngine:
    """
    Wire an engine from configuration.

    ``transport`` is passed to every httpx client (source downloads, remote
    service, remote result fetches).
    """
    config = config or EngineConfig.from_env()
    storage = storage or get_durable_storage(config)
    remote = remote or create_remote_engine(config, transport=transport)
    resolver = resolver or BinaryResolver(config, transport=transport)

    artifacts = ArtifactLifecycleManager(
        storage=storage,
        work_dir=config.work_dir,
        download_timeout_seconds=config.download_timeout_seconds,
        allow_local_sources=config.allow_local_sources,
        transport=transport,
    )
    selector = BackendSelector(config, remote, resolver, catalog=catalog)
    pipeline = BatchPipelineOrchestrator(
        artifacts=artifacts,
        remote=remote,
        local_provider=selector.local_engine,
        catalog=catalog,
    )
    logger.info(
        f"[MediaEditEngine] Created (remote: {config.remote_url if config.remote_enabled else 'disabled'}, "
        f"storage: {type(storage).__name__})"
    )
    return MediaEditEngine(config, selector, pipeline, catalog=catalog)


if __name__ == "__main__":
    # Quick validation
    async def main():
        print("\n[MediaEditEngine] Health")
        print("=" * 60)
        engine = create_edit_engine()
        status = await engine.health()
        print(f"Remote: {status['remote']['status']} (engine: {status['remote']['engine_available']})")
        print(f"Local:  {status['local']}")
        print(f"Styles: {[s['id'] for s in engine.styles.list_styles()]}")

    asyncio.run(main())
