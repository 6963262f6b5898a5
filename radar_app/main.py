"""Main FastAPI application"""
from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from radar_app import __version__
from radar_app.api import routes
from radar_app.config import Settings, get_settings
from radar_app.logging_config import setup_logging
from radar_app.models.schemas import HealthResponse, RootResponse
from radar_app.scheduler import RadarScheduler
from radar_app.services.pipeline import AcquisitionPipeline, build_pipeline
from radar_app.services.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)

API_TITLE = "Weather Radar API"


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[SnapshotStore] = None,
    pipeline: Optional[AcquisitionPipeline] = None,
    start_scheduler: Optional[bool] = None,
) -> FastAPI:
    """
    Build the API with its store, pipeline and background scheduler.

    Anything not passed in is built from ``settings``. The background
    scheduler starts with the app unless ``start_scheduler`` is False
    (default: ``settings.scheduler_enabled``).
    """
    settings = settings or get_settings()
    if start_scheduler is None:
        start_scheduler = settings.scheduler_enabled

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_store = store or SnapshotStore(settings.database_url_resolved)
        try:
            app_store.init_schema()
        except Exception:
            logger.exception("Failed to initialize database")
            raise
        app.state.store = app_store

        radar_scheduler = RadarScheduler(pipeline or build_pipeline(settings), app_store, settings)
        app.state.radar_scheduler = radar_scheduler
        if start_scheduler:
            radar_scheduler.start(run_immediately=True)
            logger.info("API available at %s/radar/latest", settings.api_prefix)

        yield

        radar_scheduler.stop()
        app_store.close()

    app = FastAPI(
        title=API_TITLE,
        description="Real-time weather radar data from MRMS, with NWS and synthetic fallbacks",
        version=__version__,
        docs_url=settings.docs_url,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials="*" not in settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routes
    app.include_router(routes.router, prefix=settings.api_prefix)

    @app.get("/", response_model=RootResponse)
    async def root():
        """Root endpoint"""
        return RootResponse(
            name=API_TITLE,
            version=__version__,
            status="operational",
            docs=settings.docs_url,
        )

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request):
        """Health check endpoint"""
        app_store = getattr(request.app.state, "store", None)
        ready = app_store is not None and app_store.ready
        return HealthResponse(
            status="healthy",
            database="connected" if ready else "not initialized",
        )

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)
    uvicorn.run(
        create_app(settings),
        host=settings.api_host,
        port=settings.api_port,
    )


if __name__ == "__main__":
    run()
