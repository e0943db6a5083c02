"""
MEDIAEDIT Local Public Storage
===========================
Writes processed results into a directory served as static files
(public/processed by default) and returns links under PUBLIC_BASE_URL.

Author: Barrios A2I
Version: 1.0.0
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Union

from edit_engine.errors import ResolutionError, UploadError

logger = logging.getLogger("mediaedit.local_storage")


class LocalPublicStorage:
    """Durable storage backed by a public directory on local disk."""

    def __init__(self, root: Union[str, Path], public_base_url: str):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")
        logger.info(f"[LocalStorage] Initialized (root: {self.root})")

    @property
    def is_configured(self) -> bool:
        return True

    def _path_for_url(self, url: str) -> Path:
        prefix = f"{self.public_base_url}/"
        if not url.startswith(prefix):
            raise ResolutionError(f"URL is not served from {self.public_base_url}: {url}", url=url)
        name = url[len(prefix):]
        if "/" in name or name in ("", ".", ".."):
            raise ResolutionError(f"Invalid stored object name: {name}", url=url)
        return self.root / name

    async def upload(self, filename: str, data: bytes, content_type: str = "video/mp4") -> str:
        if "/" in filename or "\\" in filename:
            raise UploadError(f"Invalid filename: {filename}")

        target = self.root / filename
        try:
            await asyncio.to_thread(self._write, target, data)
        except OSError as e:
            raise UploadError(f"Could not write {target}: {e}") from e

        url = f"{self.public_base_url}/{filename}"
        logger.info(f"[LocalStorage] Stored {len(data)} bytes -> {url}")
        return url

    @staticmethod
    def _write(target: Path, data: bytes):
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    async def read(self, url: str) -> bytes:
        path = self._path_for_url(url)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise ResolutionError(f"Could not read {path}: {e}", url=url) from e

    async def check_connection(self) -> Dict[str, Any]:
        return {
            "configured": True,
            "connected": self.root.exists() or self.root.parent.exists(),
            "bucket_exists": self.root.exists(),
            "error": None,
        }
