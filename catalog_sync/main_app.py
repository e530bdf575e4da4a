#=================================================================
# catalog_sync/main_app.py
# FastAPI application entry-point.
#=================================================================

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from catalog_sync.commerce.commerce_client import CommerceClient
from catalog_sync.config import settings
from catalog_sync.db import dispose_engine, get_sessionmaker, init_db
from catalog_sync.logging_filters import configure_logging
from catalog_sync.pim.pim_client import PimClient
from catalog_sync.routes import router as api_router
from catalog_sync.service import SyncService
from catalog_sync.store.object_store import ObjectStore

# --- Logging setup (console, INFO level) ---
configure_logging(logging.DEBUG if settings.DEBUG_HTTP else logging.INFO)
logger = logging.getLogger("uvicorn.error")


def create_app(service: Optional[SyncService] = None) -> FastAPI:
    """
    Build the app. Tests pass a ready SyncService; otherwise the lifespan
    creates the store and the two API clients once and shares them.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if service is not None:
            app.state.sync_service = service
            yield
            await service.shutdown()
            return

        await init_db()
        pim = PimClient()
        commerce = CommerceClient()
        app.state.sync_service = SyncService(ObjectStore(get_sessionmaker()), pim, commerce)
        logger.info("[APP] catalog sync ready (container=%s)", settings.STORE_CONTAINER)
        try:
            yield
        finally:
            await app.state.sync_service.shutdown()
            await pim.aclose()
            await commerce.aclose()
            await dispose_engine()

    app = FastAPI(
        title="Akeneo commercetools Catalog Sync",
        description="Reconciles Akeneo products into a commercetools catalog (full and delta sync).",
        lifespan=lifespan,
    )

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)           # /api/*

    # --- Root endpoint ---
    @app.get("/")
    async def home():
        return {"status": "running", "service": "Akeneo commercetools Catalog Sync"}

    # --- Global error handler (keeps full stack trace in logs) ---
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled error", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"detail": f"Sync failed: {str(exc)}"},
        )

    return app


app = create_app()

#if __name__ == "__main__":
#    import uvicorn
#
#    uvicorn.run(app, host="0.0.0.0", port=8000)
