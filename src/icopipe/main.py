"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

import PIL
from fastapi import FastAPI

from icopipe import __version__
from icopipe.api.routes import router
from icopipe.config import get_settings
from icopipe.imaging.backend import PillowBackend
from icopipe.pipeline.pool import ProcessingPool

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting icopipe with Pillow %s (max_concurrent=%s, max_image_pixels=%s, interpolation=%s)",
        PIL.__version__,
        settings.max_concurrent,
        settings.max_image_pixels,
        settings.interpolation,
    )

    app.state.backend = PillowBackend(settings.backend_config())
    processing_pool = ProcessingPool(settings)
    app.state.processing_pool = processing_pool

    logger.info("icopipe ready")
    yield

    logger.info("Shutting down icopipe")
    processing_pool.shutdown()
    logger.info("icopipe shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="icopipe",
        description="Image resize pipeline for thumbnails and icons",
        version=__version__,
        lifespan=lifespan,
    )
    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Serve the application with uvicorn using the configured host and port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("icopipe.main:app", host=settings.host, port=settings.port)
