"""
================================================================================
EDIT ENGINE - Backend Selection
================================================================================
Chooses the remote processing service or the local FFmpeg engine for one
top-level request.

REMOTE only when all hold:
  - remote processing is enabled
  - the source is reachable over http(s)
  - /health says status == "healthy" and the engine is available
  - every requested operation renders identically on the remote service
Otherwise LOCAL. A failed health probe is a silent fallback, not an error.

Health is probed on every request unless HEALTH_CACHE_TTL_SECONDS > 0.
================================================================================
"""

import logging
import time
from enum import Enum
from typing import Optional, Sequence, Tuple

from .config import EngineConfig
from .errors import BackendUnavailable
from .local_engine import BinaryResolver, LocalEngineAdapter
from .metrics import BACKEND_SELECTIONS, REMOTE_ENGINE_UP
from .operation_catalog import OperationCatalog, OperationDescriptor, default_catalog
from .remote_engine import EngineHealth, RemoteEngineAdapter

logger = logging.getLogger("mediaedit.selector")


class Backend(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


class BackendSelector:
    """Per-request backend decision with a lazily validated local fallback."""

    def __init__(
        self,
        config: EngineConfig,
        remote: RemoteEngineAdapter,
        resolver: BinaryResolver,
        catalog: OperationCatalog = default_catalog,
        clock=time.monotonic,
    ):
        self.config = config
        self.remote = remote
        self.resolver = resolver
        self.catalog = catalog
        self._clock = clock
        self._cached_health: Optional[Tuple[float, EngineHealth]] = None

    async def remote_health(self) -> EngineHealth:
        ttl = self.config.health_cache_ttl_seconds
        now = self._clock()
        if ttl > 0 and self._cached_health is not None:
            probed_at, health = self._cached_health
            if now - probed_at < ttl:
                return health

        health = await self.remote.health_check()
        REMOTE_ENGINE_UP.set(1 if health.healthy else 0)
        if ttl > 0:
            self._cached_health = (now, health)
        return health

    async def local_engine(self) -> LocalEngineAdapter:
        """Adapter over the resolved binary; BackendUnavailable if none works"""
        binary = await self.resolver.resolve()
        return LocalEngineAdapter(binary)

    def _remote_reason_against(
        self,
        descriptors: Sequence[OperationDescriptor],
        source_url: Optional[str],
    ) -> Optional[str]:
        if not self.config.remote_enabled:
            return "remote_disabled"
        if source_url is not None and not source_url.startswith(("http://", "https://")):
            return "source_not_http"
        if not all(self.catalog.is_remote_capable(d) for d in descriptors):
            return "not_remote_capable"
        return None

    async def select(
        self,
        descriptors: Sequence[OperationDescriptor],
        source_url: Optional[str] = None,
    ) -> Backend:
        reason = self._remote_reason_against(descriptors, source_url)
        if reason is None:
            health = await self.remote_health()
            if health.healthy:
                BACKEND_SELECTIONS.labels(backend=Backend.REMOTE.value, reason="healthy").inc()
                logger.info(f"[BackendSelector] Remote engine healthy ({health.version}), using remote")
                return Backend.REMOTE
            reason = "remote_unhealthy"

        try:
            await self.resolver.resolve()
        except BackendUnavailable:
            logger.error(f"[BackendSelector] Remote not usable ({reason}) and no local ffmpeg")
            raise

        BACKEND_SELECTIONS.labels(backend=Backend.LOCAL.value, reason=reason).inc()
        logger.info(f"[BackendSelector] Using local engine ({reason})")
        return Backend.LOCAL
