"""
================================================================================
EDIT ENGINE - Configuration
================================================================================
All tunables are read from the environment once, at process start, into an
EngineConfig value that is passed explicitly to every component.

Environment Variables:
- ENGINE_WORK_DIR: scratch directory for temp inputs/outputs
- REMOTE_ENGINE_URL: base URL of the remote processing service
- REMOTE_ENGINE_TIMEOUT: httpx timeout for /process and /batch (seconds)
- REMOTE_HEALTH_TIMEOUT: httpx timeout for /health (seconds)
- HEALTH_CACHE_TTL_SECONDS: reuse a health probe for this long (0 = reprobe)
- REMOTE_ENGINE_ENABLED: set to "false" to always use the local engine
- FFMPEG_BUNDLED_PATH: explicit bundled binary (defaults to imageio-ffmpeg)
- ENGINE_PROJECT_ROOT: root for well-known relative install locations
- ENGINE_DEPENDENCY_DIR: directory searched recursively for a binary
- ENGINE_DOWNLOAD_DIR: scratch directory for a downloaded binary
- DOWNLOAD_TIMEOUT: httpx timeout for source fetches (seconds)
- ALLOW_LOCAL_SOURCES: accept filesystem paths / file:// sources (default false)
- STORAGE_BACKEND: r2 | local | memory
- LOCAL_STORAGE_DIR / PUBLIC_BASE_URL: local public storage settings
================================================================================
"""

import os
import sysconfig
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class EngineConfig:
    """Process-wide engine configuration"""

    work_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / "media_edit_engine")

    # Remote processing service
    remote_url: str = "http://localhost:3001"
    remote_enabled: bool = True
    remote_timeout_seconds: float = 300.0
    health_timeout_seconds: float = 5.0
    health_cache_ttl_seconds: float = 0.0

    # Local engine binary resolution
    bundled_binary: Optional[str] = None
    project_root: Path = field(default_factory=Path.cwd)
    dependency_dir: Path = field(default_factory=lambda: Path(sysconfig.get_paths()["purelib"]))
    download_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / "ffmpeg-download")

    # Source fetches
    download_timeout_seconds: float = 120.0
    # Accept plain paths and file:// URLs as sources; the CLI turns this on
    allow_local_sources: bool = False

    # Durable storage
    storage_backend: str = "local"
    local_storage_dir: Path = field(default_factory=lambda: Path("public") / "processed")
    public_base_url: str = "http://localhost:8000/public/processed"

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build configuration from environment variables"""
        defaults = cls()
        return cls(
            work_dir=Path(os.getenv("ENGINE_WORK_DIR", str(defaults.work_dir))),
            remote_url=os.getenv("REMOTE_ENGINE_URL", defaults.remote_url).rstrip("/"),
            remote_enabled=_env_bool("REMOTE_ENGINE_ENABLED", True),
            remote_timeout_seconds=float(os.getenv("REMOTE_ENGINE_TIMEOUT", "300")),
            health_timeout_seconds=float(os.getenv("REMOTE_HEALTH_TIMEOUT", "5")),
            health_cache_ttl_seconds=float(os.getenv("HEALTH_CACHE_TTL_SECONDS", "0")),
            bundled_binary=os.getenv("FFMPEG_BUNDLED_PATH") or None,
            project_root=Path(os.getenv("ENGINE_PROJECT_ROOT", str(defaults.project_root))),
            dependency_dir=Path(os.getenv("ENGINE_DEPENDENCY_DIR", str(defaults.dependency_dir))),
            download_dir=Path(os.getenv("ENGINE_DOWNLOAD_DIR", str(defaults.download_dir))),
            download_timeout_seconds=float(os.getenv("DOWNLOAD_TIMEOUT", "120")),
            allow_local_sources=_env_bool("ALLOW_LOCAL_SOURCES", False),
            storage_backend=os.getenv("STORAGE_BACKEND", defaults.storage_backend).lower(),
            local_storage_dir=Path(os.getenv("LOCAL_STORAGE_DIR", str(defaults.local_storage_dir))),
            public_base_url=os.getenv("PUBLIC_BASE_URL", defaults.public_base_url).rstrip("/"),
        )
