# hostpulse/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from hostpulse import __version__
from hostpulse.internal.config.config import Settings
from hostpulse.internal.service import MonitoringService, create_service
from hostpulse.routers import alerts, metrics, websocket

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: str = "INFO"):
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def create_app(
    settings: Settings | None = None,
    service: MonitoringService | None = None,
    start_background_tasks: bool = True,
) -> FastAPI:
    """
    Builds the FastAPI application. When `service` is given it is used as is
    (and not closed on shutdown); otherwise one is created from `settings`
    during startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Server starting up...")
        owned = app.state.service is None
        if owned:
            app.state.service = await create_service(app.state.settings)
        if start_background_tasks:
            app.state.service.start()

        yield  # Application runs here

        logger.info("Server shutting down...")
        await app.state.service.stop(close_storage=owned)

    app = FastAPI(
        title="hostpulse",
        description="Resource metrics collection, tiered history and threshold alerts.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings or Settings()
    app.state.service = service
    app.state.local_provider = None

    # --- Include Routers ---
    app.include_router(metrics.router, prefix="/api")
    app.include_router(alerts.router, prefix="/api")
    app.include_router(websocket.router)

    @app.get("/")
    async def root():
        return {"message": "hostpulse is running."}

    @app.get("/health")
    async def health_check():
        """Health check endpoint, also used as the liveness probe for http targets"""
        return {
            "status": "healthy",
            "service": "hostpulse",
            "version": __version__,
        }

    return app

