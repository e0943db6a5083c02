"""
================================================================================
EDIT ENGINE - Remote Processing Service Client
================================================================================
httpx client for the remote video processing service:

  GET  /health  -> {status, engine_available | ffmpeg_available, version}
  POST /process -> {video_url, operation, parameters}
  POST /batch   -> {video_url, operations: [{type, parameters, order}]}

/process and /batch both answer
  {success, video_url?, error?, processing_time_ms, operation}
================================================================================
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .config import EngineConfig
from .errors import NetworkError

logger = logging.getLogger("mediaedit.remote_engine")


class EngineHealth(BaseModel):
    """Result of one health probe"""
    status: str = "unavailable"
    engine_available: bool = False
    version: str = ""
    available: bool = False
    capable: bool = False

    @property
    def healthy(self) -> bool:
        return self.available and self.status == "healthy" and self.engine_available

    @classmethod
    def unavailable(cls, reason: str = "unavailable") -> "EngineHealth":
        return cls(status=reason)


class RemoteProcessResponse(BaseModel):
    success: bool
    video_url: Optional[str] = None
    error: Optional[str] = None
    processing_time_ms: int = 0
    operation: str = ""


class RemoteEngineAdapter:
    """
    Client for the remote processing service.

    ``health_check`` never raises. ``process`` and ``process_batch`` raise
    NetworkError on transport failure or any non-2xx status.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 300.0,
        health_timeout_seconds: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.health_timeout_seconds = health_timeout_seconds
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def health_check(self) -> EngineHealth:
        try:
            async with self._client(self.health_timeout_seconds) as client:
                response = await client.get(f"{self.base_url}/health")
        except httpx.HTTPError as e:
            logger.info(f"[RemoteEngine] Health probe failed: {type(e).__name__}: {e}")
            return EngineHealth.unavailable()

        if not response.is_success:
            logger.info(f"[RemoteEngine] Health probe returned {response.status_code}")
            return EngineHealth.unavailable()

        try:
            body = response.json()
        except ValueError:
            logger.info("[RemoteEngine] Health probe returned non-JSON body")
            return EngineHealth.unavailable()
        if not isinstance(body, dict):
            return EngineHealth.unavailable()

        engine_available = bool(body.get("engine_available", body.get("ffmpeg_available", False)))
        status = str(body.get("status", "unknown"))
        return EngineHealth(
            status=status,
            engine_available=engine_available,
            version=str(body.get("version", "")),
            available=True,
            capable=status == "healthy" and engine_available,
        )

    async def _post(self, path: str, payload: Dict[str, Any]) -> RemoteProcessResponse:
        url = f"{self.base_url}{path}"
        try:
            async with self._client(self.timeout_seconds) as client:
                response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise NetworkError(f"Remote processing request failed: {type(e).__name__}: {e}") from e

        if not response.is_success:
            raise NetworkError(
                f"Remote processing failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            return RemoteProcessResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise NetworkError(f"Malformed response from {path}: {e}") from e

    async def process(
        self,
        source_url: str,
        operation: str,
        parameters: Dict[str, Any],
    ) -> RemoteProcessResponse:
        logger.info(f"[RemoteEngine] /process {operation} on {source_url}")
        return await self._post("/process", {
            "video_url": source_url,
            "operation": operation,
            "parameters": parameters,
        })

    async def process_batch(
        self,
        source_url: str,
        operations: List[Dict[str, Any]],
    ) -> RemoteProcessResponse:
        logger.info(f"[RemoteEngine] /batch with {len(operations)} operations on {source_url}")
        return await self._post("/batch", {
            "video_url": source_url,
            "operations": operations,
        })


def create_remote_engine(
    config: Optional[EngineConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> RemoteEngineAdapter:
    config = config or EngineConfig.from_env()
    return RemoteEngineAdapter(
        base_url=config.remote_url,
        timeout_seconds=config.remote_timeout_seconds,
        health_timeout_seconds=config.health_timeout_seconds,
        transport=transport,
    )
