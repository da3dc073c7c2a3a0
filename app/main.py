from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from datastore.readings_store import build_default_store
from logging_config import configure_logging
from services.ingestion import build_default_ingestion
from services.persistence import build_default_loop
from settings import get_settings
from storage.realtime_cache import build_default_cache


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    loop = build_default_loop()
    if get_settings().logger_autostart:
        loop.start()
    try:
        yield
    finally:
        loop.shutdown()
        build_default_loop.cache_clear()
        build_default_ingestion.cache_clear()
        build_default_store.cache_clear()
        build_default_cache.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Field Telemetry Cache",
        description="Realtime sensor cache with background persistence of selected readings.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
