"""
MEDIAEDIT Artifact Lifecycle
═══════════════════════════════════════════════════════════════════════════════
Owns every temporary file a job touches and the hand-off of finished results
to durable storage.

  acquire_input          source URL (or local file when allowed) -> work_dir/input_<uuid>.<ext>
  allocate_output        fresh work_dir/output_<uuid>.mp4
  publish                local result -> durable storage URL
  persist_remote_result  remote service result URL -> durable storage URL
  release                delete every temp path a job registered

Cleanup failures are logged as CleanupError and never propagate.

Author: Barrios A2I
Version: 1.0.0
═══════════════════════════════════════════════════════════════════════════════
"""

import asyncio
import logging
import shutil
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, AsyncIterator, Optional, Protocol, Union
from urllib.parse import unquote, urlparse

import httpx
from pydantic import BaseModel, ConfigDict

from edit_engine.errors import CleanupError, NetworkError, ResolutionError, UploadError
from edit_engine.metrics import CLEANUP_FAILURES

if TYPE_CHECKING:
    from edit_engine.batch_pipeline import ProcessingJob

logger = logging.getLogger("mediaedit.artifacts")

KNOWN_EXTENSIONS = {".mp4", ".mov", ".webm", ".mkv", ".avi", ".m4v"}
CONTENT_TYPE_EXTENSIONS = {
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
    "video/webm": ".webm",
    "video/x-matroska": ".mkv",
    "video/x-msvideo": ".avi",
}


class MediaReference(BaseModel):
    """Read-only pointer to the source media"""
    model_config = ConfigDict(frozen=True)

    url: str
    content_type: Optional[str] = None
    original_name: Optional[str] = None


class DurableStorage(Protocol):
    async def upload(self, filename: str, data: bytes, content_type: str = "video/mp4") -> str: ...

    async def read(self, url: str) -> bytes: ...


def unique_result_name(extension: str = ".mp4") -> str:
    """processed_<ms-timestamp>_<hex>.mp4"""
    return f"processed_{int(time.time() * 1000)}_{uuid.uuid4().hex[:12]}{extension}"


def _extension_for(source: MediaReference) -> str:
    for candidate in (source.original_name, urlparse(source.url).path):
        if candidate:
            suffix = Path(candidate).suffix.lower()
            if suffix in KNOWN_EXTENSIONS:
                return suffix
    if source.content_type:
        return CONTENT_TYPE_EXTENSIONS.get(source.content_type.split(";")[0].strip(), ".mp4")
    return ".mp4"


class ArtifactLifecycleManager:
    """Temp files in, durable URLs out."""

    def __init__(
        self,
        storage: DurableStorage,
        work_dir: Union[str, Path],
        download_timeout_seconds: float = 120.0,
        allow_local_sources: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.storage = storage
        self.work_dir = Path(work_dir)
        self.download_timeout_seconds = download_timeout_seconds
        self.allow_local_sources = allow_local_sources
        self._transport = transport

    def _ensure_work_dir(self):
        self.work_dir.mkdir(parents=True, exist_ok=True)

    def _register(self, job: Optional["ProcessingJob"], path: Path) -> Path:
        if job is not None:
            job.temp_paths.append(path)
        return path

    # =========================================================================
    # INPUTS / OUTPUTS
    # =========================================================================

    async def acquire_input(
        self,
        source: Union[MediaReference, str],
        job: Optional["ProcessingJob"] = None,
    ) -> Path:
        if isinstance(source, str):
            source = MediaReference(url=source)

        parsed = urlparse(source.url)
        remote_source = parsed.scheme in ("http", "https")
        if not remote_source and not self.allow_local_sources:
            raise ResolutionError(f"Only http(s) sources are accepted: {source.url}", url=source.url)

        self._ensure_work_dir()
        target = self._register(job, self.work_dir / f"input_{uuid.uuid4().hex}{_extension_for(source)}")

        if remote_source:
            await self._download(source.url, target)
        else:
            local = Path(unquote(parsed.path)) if parsed.scheme == "file" else Path(source.url)
            if not local.is_file():
                raise ResolutionError(f"Source file not found: {source.url}", url=source.url)
            try:
                await asyncio.to_thread(shutil.copyfile, local, target)
            except OSError as e:
                raise ResolutionError(f"Could not read source {source.url}: {e}", url=source.url) from e

        logger.info(f"[Artifacts] Acquired {source.url} -> {target.name}")
        return target

    async def _download(self, url: str, target: Path):
        try:
            async with httpx.AsyncClient(
                timeout=self.download_timeout_seconds,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                async with client.stream("GET", url) as response:
                    if not response.is_success:
                        raise ResolutionError(
                            f"Failed to download video: {response.status_code}",
                            url=url,
                            status_code=response.status_code,
                        )
                    with open(target, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            f.write(chunk)
        except httpx.HTTPError as e:
            raise ResolutionError(f"Failed to download video: {e}", url=url) from e

    def allocate_output(self, job: Optional["ProcessingJob"] = None, extension: str = ".mp4") -> Path:
        self._ensure_work_dir()
        return self._register(job, self.work_dir / f"output_{uuid.uuid4().hex}{extension}")

    # =========================================================================
    # DURABLE STORAGE
    # =========================================================================

    async def publish(self, path: Union[str, Path], content_type: str = "video/mp4") -> str:
        path = Path(path)
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise UploadError(f"Could not read result {path.name} for upload: {e}") from e
        url = await self.storage.upload(unique_result_name(path.suffix or ".mp4"), data, content_type)
        logger.info(f"[Artifacts] Published {path.name} ({len(data) / 1_000_000:.2f} MB) -> {url}")
        return url

    async def persist_remote_result(self, url: str, content_type: str = "video/mp4") -> str:
        """Copy a remote service result into durable storage"""
        try:
            async with httpx.AsyncClient(
                timeout=self.download_timeout_seconds,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            raise NetworkError(f"Could not fetch remote result {url}: {e}") from e

        if not response.is_success:
            raise NetworkError(
                f"Could not fetch remote result {url}: {response.status_code}",
                status_code=response.status_code,
            )

        suffix = Path(urlparse(url).path).suffix.lower()
        durable = await self.storage.upload(
            unique_result_name(suffix if suffix in KNOWN_EXTENSIONS else ".mp4"),
            response.content,
            content_type,
        )
        logger.info(f"[Artifacts] Persisted remote result {url} -> {durable}")
        return durable

    # =========================================================================
    # CLEANUP
    # =========================================================================

    def discard(self, path: Union[str, Path]) -> bool:
        """Delete one temp file. Returns False (and logs) on failure."""
        path = Path(path)
        try:
            path.unlink(missing_ok=True)
            return True
        except OSError as e:
            error = CleanupError(f"Could not remove temp file {path}: {e}", path=str(path))
            CLEANUP_FAILURES.inc()
            logger.warning(f"[Artifacts] {error.error_kind}: {error.message}")
            return False

    def release(self, job: "ProcessingJob") -> int:
        """Delete every temp path registered on the job; returns failures"""
        failures = 0
        for path in job.temp_paths:
            if not self.discard(path):
                failures += 1
        job.temp_paths.clear()
        return failures

    @asynccontextmanager
    async def job_scope(self, job: "ProcessingJob") -> AsyncIterator["ProcessingJob"]:
        """Guarantees release(job) on success and on failure."""
        try:
            yield job
        finally:
            self.release(job)
