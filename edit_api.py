"""
================================================================================
MEDIA EDIT ENGINE API v1.0
================================================================================
FastAPI app serving the edit engine.

Endpoints:
- POST /api/edit/operation   - Apply one operation
- POST /api/edit/batch       - Apply an ordered operation list
- POST /api/edit/style       - Apply a style preset
- GET  /api/edit/styles      - Style presets
- GET  /api/edit/operations  - Operation kinds and parameter schemas
- GET  /api/edit/health      - Backend health
- GET  /health, POST /process, POST /batch - processing-service contract
- GET  /public/...           - Results (local storage backend only)
- GET  /metrics              - Prometheus metrics

================================================================================
Author: Barrios A2I | Version: 1.0.0
================================================================================
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from api.engine_routes import router as edit_router, service_router, initialize_engine_routes
from edit_engine import __version__
from edit_engine.config import EngineConfig
from edit_engine.orchestrator import MediaEditEngine, create_edit_engine

load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}'
)
logger = logging.getLogger("mediaedit.app")


def create_app(edit_engine: Optional[MediaEditEngine] = None, config: Optional[EngineConfig] = None) -> FastAPI:
    """Build the app; pass an engine to skip environment-driven wiring"""
    config = config or (edit_engine.config if edit_engine else EngineConfig.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # =====================================================================
        # STARTUP
        # =====================================================================
        logger.info(f"Starting Media Edit Engine API v{__version__}...")
        engine = edit_engine or create_edit_engine(config)
        initialize_engine_routes(engine)
        logger.info("=" * 60)
        logger.info("MEDIA EDIT ENGINE API READY")
        logger.info("=" * 60)

        yield

        # =====================================================================
        # SHUTDOWN
        # =====================================================================
        logger.info("Shutting down Media Edit Engine API...")

    app = FastAPI(
        title="Media Edit Engine API",
        description="Structured video edit operations executed on a remote processing service or local FFmpeg.",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000").split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(edit_router)
    app.include_router(service_router)

    if config.storage_backend == "local":
        # Directory is created by the first upload
        public_dir = config.local_storage_dir.parent
        app.mount("/public", StaticFiles(directory=str(public_dir), check_dir=False), name="public")

    @app.get("/metrics", tags=["Observability"])
    async def prometheus_metrics():
        """Prometheus metrics endpoint"""
        return Response(
            content=generate_latest(),
            media_type=CONTENT_TYPE_LATEST
        )

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "name": "Media Edit Engine API",
            "version": __version__,
            "docs": "/docs",
            "health": "/api/edit/health",
            "metrics": "/metrics",
        }

    return app


app = create_app()


# =============================================================================
# RUN SERVER
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "edit_api:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=False
    )
