"""
================================================================================
MEDIA EDIT ENGINE - FastAPI Routers
================================================================================
Two surfaces over one MediaEditEngine.

Engine API (prefix /api/edit):
- POST /api/edit/operation  - Apply one operation
- POST /api/edit/batch      - Apply an ordered list of operations
- POST /api/edit/style      - Apply a named style preset
- GET  /api/edit/styles     - List style presets
- GET  /api/edit/operations - Operation kinds with parameter schemas
- GET  /api/edit/health     - Remote service and local binary status

Processing-service contract (no prefix), pinned to the local engine so this
deployment can itself serve as another deployment's remote service:
- GET  /health
- POST /process  {video_url, operation, parameters}
- POST /batch    {video_url, operations: [{type, parameters, order}]}

Author: Barrios A2I | Version: 1.0.0
================================================================================
"""

import logging
import time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from edit_engine import __version__ as engine_version
from edit_engine.backend_selector import Backend
from edit_engine.batch_pipeline import EngineResult
from edit_engine.errors import BackendUnavailable, MediaEngineError
from edit_engine.orchestrator import MediaEditEngine
from storage import MediaReference

logger = logging.getLogger("mediaedit.api")


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class WireOperation(BaseModel):
    """Operation as sent by the chat tools and the remote contract"""
    type: str = Field(..., description="Operation kind, e.g. trimVideo")
    parameters: Dict[str, Any] = Field(default_factory=dict)
    order: int = 0


class SourceModel(BaseModel):
    url: str
    content_type: Optional[str] = None
    original_name: Optional[str] = None

    def to_reference(self) -> MediaReference:
        return MediaReference(**self.model_dump())


class OperationRequest(BaseModel):
    source: SourceModel
    operation: WireOperation


class BatchRequest(BaseModel):
    source: SourceModel
    operations: List[WireOperation] = Field(..., min_length=1)


class StyleRequest(BaseModel):
    source: SourceModel
    style: str = Field(..., description="cinematic | vintage | modern | social-media | professional")


class ServiceProcessRequest(BaseModel):
    video_url: str
    operation: str
    parameters: Dict[str, Any] = Field(default_factory=dict)


class ServiceBatchRequest(BaseModel):
    video_url: str
    operations: List[WireOperation]


class ServiceProcessResponse(BaseModel):
    success: bool
    video_url: Optional[str] = None
    error: Optional[str] = None
    processing_time_ms: int
    operation: str


class ServiceHealthResponse(BaseModel):
    status: str
    engine_available: bool
    # Legacy field name read by older clients
    ffmpeg_available: bool
    version: str


# HTTP status per error kind; anything unlisted is a 502
ERROR_STATUS = {
    "ValidationError": 422,
    "UnsupportedOperation": 422,
    "ResolutionError": 400,
    "BackendUnavailable": 503,
}


# =============================================================================
# ROUTER STATE
# =============================================================================

router = APIRouter(prefix="/api/edit", tags=["Media Edit Engine"])
service_router = APIRouter(tags=["Processing Service"])

engine: Optional[MediaEditEngine] = None
service_engine: Optional[MediaEditEngine] = None


def initialize_engine_routes(edit_engine: MediaEditEngine):
    """Install the engine (called from the app lifespan)"""
    global engine, service_engine
    engine = edit_engine
    service_engine = edit_engine.pinned(Backend.LOCAL)
    logger.info("[EngineRoutes] Initialized")


def _require_engine() -> MediaEditEngine:
    if engine is None:
        raise HTTPException(status_code=503, detail="Edit engine not initialized")
    return engine


def _require_service_engine() -> MediaEditEngine:
    if service_engine is None:
        raise HTTPException(status_code=503, detail="Edit engine not initialized")
    return service_engine


def _result_response(result: EngineResult) -> JSONResponse:
    status_code = 200 if result.success else ERROR_STATUS.get(result.error_kind or "", 502)
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


def _rejected(error: MediaEngineError) -> EngineResult:
    return EngineResult(success=False, message=error.message, error_kind=error.error_kind)


# =============================================================================
# ENGINE API
# =============================================================================

@router.post("/operation", response_model=EngineResult)
async def apply_operation(request: OperationRequest):
    edit_engine = _require_engine()
    try:
        descriptor = edit_engine.catalog.descriptor(
            request.operation.type, request.operation.parameters, request.operation.order
        )
    except MediaEngineError as e:
        return _result_response(_rejected(e))

    result = await edit_engine.execute_operation(request.source.to_reference(), descriptor)
    return _result_response(result)


@router.post("/batch", response_model=EngineResult)
async def apply_batch(request: BatchRequest):
    edit_engine = _require_engine()
    try:
        descriptors = [
            edit_engine.catalog.descriptor(op.type, op.parameters, op.order)
            for op in request.operations
        ]
    except MediaEngineError as e:
        return _result_response(_rejected(e))

    result = await edit_engine.execute_batch(request.source.to_reference(), descriptors)
    return _result_response(result)


@router.post("/style", response_model=EngineResult)
async def apply_style(request: StyleRequest):
    edit_engine = _require_engine()
    result = await edit_engine.apply_style(request.source.to_reference(), request.style)
    return _result_response(result)


@router.get("/styles")
async def list_styles():
    return {"styles": _require_engine().styles.list_styles()}


@router.get("/operations")
async def list_operations():
    return {"operations": _require_engine().catalog.describe()}


@router.get("/health")
async def engine_health():
    edit_engine = _require_engine()
    status = await edit_engine.health()
    usable = status["local"]["available"] or status["remote"]["capable"]
    return {
        "status": "healthy" if usable else "degraded",
        "version": engine_version,
        **status,
    }


# =============================================================================
# PROCESSING-SERVICE CONTRACT
# =============================================================================

def _service_response(result: EngineResult, operation: str, started: float) -> ServiceProcessResponse:
    return ServiceProcessResponse(
        success=result.success,
        video_url=result.result_url,
        error=None if result.success else result.message,
        processing_time_ms=int((time.monotonic() - started) * 1000),
        operation=operation,
    )


@service_router.get("/health", response_model=ServiceHealthResponse)
async def service_health():
    edit_engine = _require_service_engine()
    try:
        await edit_engine.selector.resolver.resolve()
        available = True
    except BackendUnavailable:
        available = False

    return ServiceHealthResponse(
        status="healthy",
        engine_available=available,
        ffmpeg_available=available,
        version=engine_version,
    )


@service_router.post("/process", response_model=ServiceProcessResponse)
async def service_process(request: ServiceProcessRequest):
    edit_engine = _require_service_engine()
    started = time.monotonic()
    try:
        descriptor = edit_engine.catalog.descriptor(request.operation, request.parameters)
    except MediaEngineError as e:
        return _service_response(_rejected(e), request.operation, started)

    result = await edit_engine.execute_operation(request.video_url, descriptor)
    logger.info(f"[ProcessingService] /process {request.operation}: success={result.success}")
    return _service_response(result, request.operation, started)


@service_router.post("/batch", response_model=ServiceProcessResponse)
async def service_batch(request: ServiceBatchRequest):
    edit_engine = _require_service_engine()
    started = time.monotonic()
    try:
        descriptors = [
            edit_engine.catalog.descriptor(op.type, op.parameters, op.order)
            for op in request.operations
        ]
    except MediaEngineError as e:
        return _service_response(_rejected(e), "batch", started)

    result = await edit_engine.execute_batch(request.video_url, descriptors)
    logger.info(f"[ProcessingService] /batch ({len(descriptors)} ops): success={result.success}")
    return _service_response(result, "batch", started)
