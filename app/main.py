from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from logging_config import configure_logging
from services.ingest import build_default_ingestor
from services.locator import build_default_locator
from services.weather import build_default_resolver


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    resolver = build_default_resolver()
    build_default_locator()
    build_default_ingestor()
    try:
        yield
    finally:
        if resolver.provider is not None:
            resolver.provider.close()
        build_default_resolver.cache_clear()
        build_default_locator.cache_clear()
        build_default_ingestor.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Site Conditions",
        description="Weather resolution and vehicle tracking lookups for snow-removal site reports.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
