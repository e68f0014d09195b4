"""
OpenSoul Registry Server

FastAPI application serving the soul registry.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .blobs import create_blob_storage
from .config import OpenSoulConfig, load_config
from .errors import OpenSoulError, NotFoundError
from .registry import SoulRegistry, SoulStorage, create_soul_router, create_user_router

logger = logging.getLogger("opensoul.server")


# =============================================================================
# Application Factory
# =============================================================================

def create_app(config: OpenSoulConfig = None) -> FastAPI:
    """Create FastAPI application."""
    config = config or OpenSoulConfig()

    storage = SoulStorage(db_path=config.registry.db_path)
    blobs = create_blob_storage(config.storage)
    registry = SoulRegistry(storage=storage, blobs=blobs)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        logger.info(
            f"OpenSoul registry starting (db: {config.registry.db_path}, "
            f"storage: {config.storage.backend})"
        )
        yield
        logger.info("OpenSoul registry shutting down...")

    app = FastAPI(
        title="OpenSoul Registry",
        description="Shared registry of AI agent personality documents",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.registry = registry
    app.state.config = config

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(OpenSoulError)
    async def opensoul_error(request: Request, exc: OpenSoulError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        body = {"error": str(exc)}
        if isinstance(exc, NotFoundError) and exc.suggestions:
            body["suggestions"] = exc.suggestions
        return JSONResponse(status_code=exc.status_code, content=body)

    # =========================================================================
    # Routes
    # =========================================================================

    @app.get("/")
    async def root():
        """Service info."""
        return {
            "service": "OpenSoul Registry",
            "version": __version__,
            "status": "running",
            "storage": config.storage.backend,
        }

    @app.get("/health")
    async def health():
        """Health check."""
        return {"status": "healthy"}

    @app.get("/api/v1/stats")
    async def stats():
        """Registry-wide counters."""
        return storage.stats()

    app.include_router(create_soul_router(registry))
    app.include_router(create_user_router(registry))

    return app


# =============================================================================
# Main
# =============================================================================

def main(config_path: str = None):
    """Run the OpenSoul registry server."""
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    config = load_config(config_path) if config_path else OpenSoulConfig()
    app = create_app(config)

    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        workers=config.server.workers,
        reload=config.server.reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
