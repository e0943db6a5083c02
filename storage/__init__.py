"""
MEDIAEDIT Storage
=================
Durable result storage backends and the temp-artifact lifecycle.
"""

import logging
from typing import Optional

from edit_engine.config import EngineConfig

from .artifact_lifecycle import ArtifactLifecycleManager, DurableStorage, MediaReference
from .local_storage import LocalPublicStorage
from .r2_storage import MemoryResultStorage, R2ResultStorage

logger = logging.getLogger("mediaedit.storage")

__all__ = [
    "ArtifactLifecycleManager",
    "DurableStorage",
    "LocalPublicStorage",
    "MediaReference",
    "MemoryResultStorage",
    "R2ResultStorage",
    "get_durable_storage",
]


def get_durable_storage(config: Optional[EngineConfig] = None) -> DurableStorage:
    """
    Storage backend selected by STORAGE_BACKEND.

    r2 falls back to in-memory storage when credentials are missing.
    """
    config = config or EngineConfig.from_env()
    backend = config.storage_backend

    if backend == "r2":
        storage = R2ResultStorage()
        if storage.is_configured:
            return storage
        logger.warning("[Storage] R2 not configured, using MemoryResultStorage")
        return MemoryResultStorage()

    if backend == "memory":
        return MemoryResultStorage()

    return LocalPublicStorage(config.local_storage_dir, config.public_base_url)
