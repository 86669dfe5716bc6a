"""
Stock & Order Sync: main application

FastAPI application entry point. The lifespan builds the sync engine,
loads persisted state and starts the periodic jobs.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import structlog
from datetime import datetime, timezone

from config import configure_logging, get_settings
from services.engine import SyncEngine, get_sync_engine, set_sync_engine

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup: Configure logging, load mappings, start scheduler
    Shutdown: Stop scheduler, drain in-flight work, close clients
    """
    settings = get_settings()
    configure_logging(settings.log_level, json_logs=settings.is_production)

    logger.info(
        "application_starting",
        environment=settings.environment,
        debug=settings.debug,
        settings=settings.to_safe_dict()
    )

    engine = SyncEngine(settings)
    set_sync_engine(engine)
    await engine.start()

    yield

    # Shutdown
    logger.info("application_shutting_down")
    await engine.stop()
    set_sync_engine(None)


def create_app() -> FastAPI:
    """Build the FastAPI application with all routers and handlers."""
    app = FastAPI(
        title="Stock & Order Sync",
        description="Stock and order synchronization between the inventory system and the marketplace",
        version="1.0.0",
        lifespan=lifespan,
    )

    # ===================
    # ROUTES
    # ===================

    @app.get("/health")
    async def health_check():
        """
        Health check endpoint.

        Returns:
            Service status, mapping state and scheduler state
        """
        engine = get_sync_engine()
        store_stats = engine.product_store.stats()

        return {
            "status": "healthy" if store_stats.is_loaded else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": engine.settings.environment,
            "mappings": {
                "loaded": store_stats.is_loaded,
                "total": store_stats.total_mappings,
            },
            "orders": engine.order_store.count(),
            "scheduler": engine.scheduler.is_running,
        }

    # ===================
    # ERROR HANDLERS
    # ===================

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Global exception handler.

        Catches unhandled exceptions and returns the standard error format
        without internal detail.
        """
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            error_type=type(exc).__name__
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                    "timestamp": datetime.now(timezone.utc).isoformat()
                }
            }
        )

    # ===================
    # INCLUDE ROUTERS
    # ===================
    from routes import webhooks_router, mapping_router, jobs_router

    app.include_router(webhooks_router)  # Prefix already in router
    app.include_router(mapping_router)  # Prefix already in router
    app.include_router(jobs_router)  # Prefix already in router

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
