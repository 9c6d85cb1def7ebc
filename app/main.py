"""Application factory and lifespan wiring."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from datastore.reading_archive import build_default_archive
from logging_config import configure_logging
from services.analytics import build_default_analytics_service
from services.historical import build_default_source
from services.processor import build_default_processor


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    processor = build_default_processor()
    analytics = build_default_analytics_service()
    try:
        yield
    finally:
        processor.shutdown()
        analytics.close()
        build_default_processor.cache_clear()
        build_default_analytics_service.cache_clear()
        build_default_source.cache_clear()
        build_default_archive.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Sensor Analytics Pipeline",
        description="Ingests air-quality readings, tracks per-sensor analytics and serves cached reports.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app


app = create_app()
