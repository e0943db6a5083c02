"""
================================================================================
EDIT ENGINE - Local FFmpeg Adapter
================================================================================
Runs compiled invocations against a local FFmpeg binary.

Binary resolution (first usable candidate wins):
  1. bundled binary (FFMPEG_BUNDLED_PATH, else imageio-ffmpeg's download),
     skipped when it looks like an unresolved build placeholder
  2. well-known locations under the project root
  3. recursive search of the dependency directory
  4. `ffmpeg` on PATH
  5. download of a static build (macOS only)

The chosen candidate must answer `-version`. If it does not, resolution runs
one more time with that candidate excluded. The result is an immutable
ResolvedBinary shared by every job.

Author: Barrios A2I
Version: 1.0.0
================================================================================
"""

import asyncio
import logging
import os
import re
import shutil
import stat
import sys
import zipfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional, Set, Tuple

import httpx
import imageio_ffmpeg

from .config import EngineConfig
from .errors import BackendUnavailable, EngineSpawnError, InvocationError
from .operation_catalog import CompiledInvocation, MediaInfo

logger = logging.getLogger("mediaedit.local_engine")


BINARY_NAME = "ffmpeg.exe" if sys.platform == "win32" else "ffmpeg"

# Markers left behind when a bundler failed to substitute a real path
PLACEHOLDER_MARKERS = ("[project]", "${", "{{")

PROJECT_LOCATIONS = (
    Path("bin") / BINARY_NAME,
    Path("vendor") / "ffmpeg" / BINARY_NAME,
    Path("tools") / "ffmpeg" / BINARY_NAME,
    Path("node_modules") / "ffmpeg-static" / BINARY_NAME,
    Path("node_modules") / "ffmpeg-static" / "bin" / BINARY_NAME,
)

MACOS_DOWNLOAD_URL = "https://evermeet.cx/ffmpeg/get/zip"

# Tail of stderr kept in error messages
STDERR_TAIL = 500


class BinarySource(str, Enum):
    BUNDLED = "bundled"
    PROJECT = "project"
    DEPENDENCY_SEARCH = "dependency_search"
    SYSTEM_PATH = "system_path"
    DOWNLOADED = "downloaded"


@dataclass(frozen=True)
class ResolvedBinary:
    """Validated FFmpeg executable"""
    path: str
    source: BinarySource
    version: str = ""


def looks_like_placeholder(path: str) -> bool:
    return any(marker in path for marker in PLACEHOLDER_MARKERS)


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def _bundled_binary(config: EngineConfig) -> Optional[str]:
    if config.bundled_binary:
        return config.bundled_binary
    try:
        return imageio_ffmpeg.get_ffmpeg_exe()
    except RuntimeError as e:
        logger.debug(f"[BinaryResolver] imageio-ffmpeg has no binary: {e}")
        return None


# =============================================================================
# BINARY RESOLUTION
# =============================================================================

class BinaryResolver:
    """Finds and validates the FFmpeg binary once per process."""

    def __init__(self, config: EngineConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport
        self._resolved: Optional[ResolvedBinary] = None
        self._lock = asyncio.Lock()

    def candidates(self, skip: Set[str]) -> Iterator[Tuple[BinarySource, str]]:
        """Filesystem candidates in priority order (download excluded)"""
        bundled = _bundled_binary(self.config)
        if bundled:
            if looks_like_placeholder(bundled):
                logger.warning(f"[BinaryResolver] Bundled path is a placeholder: {bundled}")
            elif _is_executable(Path(bundled)) and bundled not in skip:
                yield BinarySource.BUNDLED, bundled

        for relative in PROJECT_LOCATIONS:
            path = self.config.project_root / relative
            if _is_executable(path) and str(path) not in skip:
                yield BinarySource.PROJECT, str(path)

        dependency_dir = self.config.dependency_dir
        if dependency_dir.is_dir():
            for path in dependency_dir.rglob(BINARY_NAME):
                if _is_executable(path) and str(path) not in skip:
                    yield BinarySource.DEPENDENCY_SEARCH, str(path)

        system = shutil.which(BINARY_NAME)
        if system and system not in skip:
            yield BinarySource.SYSTEM_PATH, system

    async def resolve(self) -> ResolvedBinary:
        if self._resolved is not None:
            return self._resolved

        async with self._lock:
            if self._resolved is None:
                self._resolved = await self._resolve_validated()
        return self._resolved

    def reset(self):
        self._resolved = None

    async def _resolve_validated(self) -> ResolvedBinary:
        skip: Set[str] = set()
        for _ in range(2):
            source, path = await self._first_candidate(skip)
            version = await probe_version(path)
            if version is not None:
                resolved = ResolvedBinary(path=path, source=source, version=version)
                logger.info(f"[BinaryResolver] Using {source.value} ffmpeg: {path} ({version})")
                return resolved
            logger.warning(f"[BinaryResolver] {path} failed -version, re-resolving")
            skip.add(path)
        raise BackendUnavailable("No working ffmpeg binary after re-resolution")

    async def _first_candidate(self, skip: Set[str]) -> Tuple[BinarySource, str]:
        for source, path in self.candidates(skip):
            return source, path
        downloaded = await self._download(skip)
        return BinarySource.DOWNLOADED, downloaded

    async def _download(self, skip: Set[str]) -> str:
        if sys.platform != "darwin":
            raise BackendUnavailable(
                f"ffmpeg not found and no download is available for platform {sys.platform}"
            )

        target = self.config.download_dir / BINARY_NAME
        if str(target) in skip:
            raise BackendUnavailable(f"Downloaded ffmpeg at {target} is not usable")

        logger.info(f"[BinaryResolver] Downloading ffmpeg for macOS from {MACOS_DOWNLOAD_URL}")
        self.config.download_dir.mkdir(parents=True, exist_ok=True)
        zip_path = self.config.download_dir / "ffmpeg.zip"

        try:
            async with httpx.AsyncClient(
                timeout=self.config.download_timeout_seconds,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.get(MACOS_DOWNLOAD_URL)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise BackendUnavailable(f"ffmpeg download failed: {e}") from e

        try:
            await asyncio.to_thread(self._install_archive, response.content, zip_path, target)
        except (zipfile.BadZipFile, OSError) as e:
            raise BackendUnavailable(f"ffmpeg download could not be unpacked: {e}") from e
        logger.info(f"[BinaryResolver] Extracted ffmpeg to {target}")
        return str(target)

    def _install_archive(self, payload: bytes, zip_path: Path, target: Path):
        zip_path.write_bytes(payload)
        with zipfile.ZipFile(zip_path) as archive:
            archive.extractall(self.config.download_dir)

        if not target.is_file():
            raise BackendUnavailable("ffmpeg download did not contain a binary")
        target.chmod(target.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


async def probe_version(path: str) -> Optional[str]:
    """First line of `ffmpeg -version`, or None when the binary is unusable"""
    try:
        process = await asyncio.create_subprocess_exec(
            path, "-version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE
        )
        stdout, _ = await process.communicate()
    except OSError as e:
        logger.debug(f"[BinaryResolver] Cannot spawn {path}: {e}")
        return None

    if process.returncode != 0:
        return None
    lines = stdout.decode(errors="replace").splitlines()
    return lines[0].strip() if lines else ""


# =============================================================================
# PROBE PARSING
# =============================================================================

_DURATION_RE = re.compile(r"Duration:\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
_VIDEO_SIZE_RE = re.compile(r"Stream #\S+.*?Video:.*?[,\s](\d{2,5})x(\d{2,5})[,\s\]]")
_AUDIO_RE = re.compile(r"Stream #\S+.*?Audio:")
# Side data "displaymatrix: rotation of -90.00 degrees"; older builds print "rotate : 90"
_ROTATION_RE = re.compile(r"displaymatrix:\s*rotation of\s*(-?\d+(?:\.\d+)?)|^\s*rotate\s*:\s*(-?\d+)", re.MULTILINE)


def display_rotation(stderr: str) -> int:
    """Rotation ffmpeg applies before filtering, normalised to 0/90/180/270"""
    match = _ROTATION_RE.search(stderr)
    if not match:
        return 0
    degrees = float(match.group(1) if match.group(1) is not None else match.group(2))
    return int(round(degrees / 90.0)) * 90 % 360


def parse_media_info(stderr: str) -> MediaInfo:
    """
    Extract duration, frame size and audio presence from `ffmpeg -i` output.

    Width and height are the displayed frame: a quarter-turn rotation flag
    (phone footage) swaps the stored dimensions, matching what filters see.
    """
    duration = None
    match = _DURATION_RE.search(stderr)
    if match:
        hours, minutes, seconds = match.groups()
        duration = int(hours) * 3600 + int(minutes) * 60 + float(seconds)

    width = height = None
    match = _VIDEO_SIZE_RE.search(stderr)
    if match:
        width, height = int(match.group(1)), int(match.group(2))
        if display_rotation(stderr) in (90, 270):
            width, height = height, width

    return MediaInfo(
        duration=duration,
        width=width,
        height=height,
        has_audio=_AUDIO_RE.search(stderr) is not None,
    )


# =============================================================================
# ADAPTER
# =============================================================================

class LocalEngineAdapter:
    """Spawns FFmpeg for one compiled invocation at a time."""

    def __init__(self, binary: ResolvedBinary):
        self.binary = binary

    async def _spawn(self, args) -> Tuple[int, str, str]:
        try:
            process = await asyncio.create_subprocess_exec(
                self.binary.path, *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            raise EngineSpawnError(
                f"FFmpeg spawn error: {e}. Path: {self.binary.path}",
                binary=self.binary.path,
            ) from e

        stdout, stderr = await process.communicate()
        return (
            process.returncode,
            stdout.decode(errors="replace"),
            stderr.decode(errors="replace"),
        )

    async def run(
        self,
        invocation: CompiledInvocation,
        input_path: str,
        output_path: str,
    ) -> Tuple[str, str]:
        """Execute one invocation; returns (stdout, stderr)"""
        args = invocation.render(input_path, output_path)
        logger.info(f"[LocalEngine] {invocation.operation.value}: ffmpeg {' '.join(args)}")

        returncode, stdout, stderr = await self._spawn(args)
        if returncode != 0:
            tail = stderr[-STDERR_TAIL:]
            logger.error(f"[LocalEngine] FFmpeg exited {returncode}: {tail}")
            raise InvocationError(
                f"FFmpeg process exited with code {returncode}: {tail}",
                returncode=returncode,
                stdout=stdout,
                stderr=stderr,
            )
        return stdout, stderr

    async def probe(self, path: str) -> MediaInfo:
        # With no output file ffmpeg exits 1 after printing the input summary
        returncode, stdout, stderr = await self._spawn(["-hide_banner", "-i", path])
        if "Input #0" not in stderr:
            raise InvocationError(
                f"Could not read media at {path}: {stderr[-STDERR_TAIL:]}",
                returncode=returncode,
                stdout=stdout,
                stderr=stderr,
            )
        info = parse_media_info(stderr)
        logger.debug(f"[LocalEngine] Probed {path}: {info.model_dump()}")
        return info


async def create_local_engine(
    config: Optional[EngineConfig] = None,
    resolver: Optional[BinaryResolver] = None,
) -> LocalEngineAdapter:
    """Resolve the binary (once) and wrap it in an adapter."""
    resolver = resolver or BinaryResolver(config or EngineConfig.from_env())
    binary = await resolver.resolve()
    return LocalEngineAdapter(binary)


if __name__ == "__main__":
    # Quick validation
    async def main():
        print("\n[LocalEngine] Binary Resolution")
        print("=" * 60)
        try:
            engine = await create_local_engine()
            print(f"Source:  {engine.binary.source.value}")
            print(f"Path:    {engine.binary.path}")
            print(f"Version: {engine.binary.version[:60]}")
        except BackendUnavailable as e:
            print(f"Unavailable: {e.message}")

    asyncio.run(main())
