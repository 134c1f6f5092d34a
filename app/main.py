from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import router
from app.stream import router as stream_router
from datastore.database import build_default_database
from datastore.readings import build_default_store
from datastore.registry import build_default_registry
from logging_config import configure_logging
from services.broadcast import build_default_hub
from services.ingestion import build_default_ingestion
from settings import get_settings

_FACTORIES = (
    build_default_ingestion,
    build_default_hub,
    build_default_registry,
    build_default_store,
    build_default_database,
)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    registry = build_default_registry()
    await registry.initialize()
    hub = build_default_hub()
    try:
        yield
    finally:
        await hub.close()
        for factory in _FACTORIES:
            factory.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(
        title="Sensor Live Feed",
        description="Temperature and humidity ingestion with live dashboard updates.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    app.include_router(stream_router)
    return app

app = create_app()
