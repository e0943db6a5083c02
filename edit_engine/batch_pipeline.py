"""
================================================================================
EDIT ENGINE - Batch Pipeline
================================================================================
Runs one or more operations against a single source.

Remote backend:
  one /process or /batch call, then the remote result is copied to durable
  storage (remote results are not permanent).

Local backend:
  input acquired once, operations sorted by `order` (stable), stage i reads
  stage i-1's output and writes a fresh temp file. The first failing stage
  stops the run and is reported by index. Intermediates are discarded as soon
  as the next stage has consumed them; everything else is released when the
  job ends, on success and on failure.

Author: Barrios A2I
Version: 1.0.0
================================================================================
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence

from pydantic import BaseModel

from storage.artifact_lifecycle import ArtifactLifecycleManager, MediaReference

from .backend_selector import Backend
from .errors import InvocationError, MediaEngineError, ResolutionError
from .local_engine import LocalEngineAdapter
from .metrics import STAGE_FAILURES, STAGE_LATENCY
from .operation_catalog import (
    CompileContext,
    OperationCatalog,
    OperationDescriptor,
    default_catalog,
)
from .remote_engine import RemoteEngineAdapter, RemoteProcessResponse

logger = logging.getLogger("mediaedit.pipeline")


# =============================================================================
# JOB AND RESULT MODELS
# =============================================================================

class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class EngineResult(BaseModel):
    """Uniform outcome of every engine entry point"""
    success: bool
    result_url: Optional[str] = None
    duration_ms: int = 0
    message: str = ""
    error_kind: Optional[str] = None
    operations_applied: int = 0
    failed_operation_index: Optional[int] = None
    backend: Optional[Backend] = None


@dataclass
class ProcessingJob:
    """Per-invocation state; every path in temp_paths is deleted when the job ends"""
    source_ref: MediaReference
    operations: List[OperationDescriptor]
    backend: Backend
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    temp_input_path: Optional[Path] = None
    temp_output_path: Optional[Path] = None
    temp_paths: List[Path] = field(default_factory=list)
    started_at: float = field(default_factory=time.monotonic)
    status: JobStatus = JobStatus.PENDING

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)

    def completed(self, result_url: str, operations_applied: int) -> EngineResult:
        self.status = JobStatus.COMPLETED
        return EngineResult(
            success=True,
            result_url=result_url,
            duration_ms=self.elapsed_ms,
            message=f"Applied {operations_applied} operation(s) via {self.backend.value} engine",
            operations_applied=operations_applied,
            backend=self.backend,
        )

    def failed(
        self,
        error: MediaEngineError,
        operations_applied: int = 0,
        failed_operation_index: Optional[int] = None,
    ) -> EngineResult:
        self.status = JobStatus.FAILED
        return EngineResult(
            success=False,
            duration_ms=self.elapsed_ms,
            message=error.message,
            error_kind=error.error_kind,
            operations_applied=operations_applied,
            failed_operation_index=failed_operation_index,
            backend=self.backend,
        )


LocalEngineProvider = Callable[[], Awaitable[LocalEngineAdapter]]


def remote_failure(response: RemoteProcessResponse) -> MediaEngineError:
    """Map a {success: false} body from the remote service onto the taxonomy"""
    message = response.error or f"Remote {response.operation or 'processing'} failed"
    if message.startswith("Failed to download video"):
        return ResolutionError(message)
    return InvocationError(message)


# =============================================================================
# PIPELINE
# =============================================================================

class BatchPipelineOrchestrator:
    """Drives a backend through an ordered operation list."""

    def __init__(
        self,
        artifacts: ArtifactLifecycleManager,
        remote: RemoteEngineAdapter,
        local_provider: LocalEngineProvider,
        catalog: OperationCatalog = default_catalog,
    ):
        self.artifacts = artifacts
        self.remote = remote
        self.local_provider = local_provider
        self.catalog = catalog

    async def run_single(
        self,
        source_ref: MediaReference,
        descriptor: OperationDescriptor,
        backend: Backend,
    ) -> EngineResult:
        if backend == Backend.REMOTE:
            job = ProcessingJob(source_ref=source_ref, operations=[descriptor], backend=backend)
            wire = self.catalog.to_wire(descriptor)
            return await self._run_remote(
                job,
                self.remote.process(source_ref.url, wire["type"], wire["parameters"]),
            )
        return await self.run_batch(source_ref, [descriptor], backend)

    async def run_batch(
        self,
        source_ref: MediaReference,
        descriptors: Sequence[OperationDescriptor],
        backend: Backend,
    ) -> EngineResult:
        ordered = sorted(descriptors, key=lambda d: d.order)
        job = ProcessingJob(source_ref=source_ref, operations=ordered, backend=backend)

        if backend == Backend.REMOTE:
            wire = [self.catalog.to_wire(d) for d in ordered]
            return await self._run_remote(job, self.remote.process_batch(source_ref.url, wire))
        return await self._run_local(job)

    async def _run_remote(self, job: ProcessingJob, call: Awaitable[RemoteProcessResponse]) -> EngineResult:
        job.status = JobStatus.RUNNING
        try:
            response = await call
            if not response.success or not response.video_url:
                raise remote_failure(response)
            durable_url = await self.artifacts.persist_remote_result(response.video_url)
        except MediaEngineError as e:
            logger.error(f"[Pipeline] Job {job.job_id} remote failure: {e.error_kind}: {e.message}")
            STAGE_FAILURES.labels(operation="remote", error_kind=e.error_kind).inc()
            return job.failed(e)

        logger.info(
            f"[Pipeline] Job {job.job_id} remote completed in {response.processing_time_ms}ms "
            f"(service) / {job.elapsed_ms}ms (total)"
        )
        return job.completed(durable_url, len(job.operations))

    async def _run_local(self, job: ProcessingJob) -> EngineResult:
        job.status = JobStatus.RUNNING
        params = self.catalog.validate_all(job.operations)
        applied = 0
        stage: Optional[int] = None

        async with self.artifacts.job_scope(job):
            try:
                engine = await self.local_provider()
                current = await self.artifacts.acquire_input(job.source_ref, job)
                job.temp_input_path = current

                for stage, (descriptor, param) in enumerate(zip(job.operations, params)):
                    kind = descriptor.kind.value
                    started = time.monotonic()

                    source_info = await engine.probe(str(current)) if param.needs_source_info else None
                    invocation = param.compile(CompileContext(source=source_info))
                    output = self.artifacts.allocate_output(job)
                    await engine.run(invocation, str(current), str(output))

                    STAGE_LATENCY.labels(operation=kind).observe(time.monotonic() - started)
                    logger.info(f"[Pipeline] Job {job.job_id} stage {stage + 1}/{len(params)} {kind} done")

                    if current != job.temp_input_path:
                        self.artifacts.discard(current)
                    current = output
                    applied += 1

                stage = None
                job.temp_output_path = current
                result_url = await self.artifacts.publish(current)
            except MediaEngineError as e:
                operation = job.operations[stage].kind.value if stage is not None else "pipeline"
                STAGE_FAILURES.labels(operation=operation, error_kind=e.error_kind).inc()
                logger.error(
                    f"[Pipeline] Job {job.job_id} failed at "
                    f"{'stage ' + str(stage) if stage is not None else 'setup/publish'}: "
                    f"{e.error_kind}: {e.message}"
                )
                return job.failed(e, operations_applied=applied, failed_operation_index=stage)

        return job.completed(result_url, applied)
