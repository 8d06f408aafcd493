"""FastAPI application wiring for the Frame accounts service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.handlers import register_exception_handlers
from .api.routes import router as api_router
from .config import Settings, get_settings
from .domain.service import AccountService, StatusService
from .logging_config import setup_logging
from .repository import (
    AccountRepository,
    DocumentCollection,
    MemoryCollection,
    PostgresCollection,
    StatusRepository,
    UserRepository,
)

COLLECTIONS = ("accounts", "users", "statuses")

settings = get_settings()
setup_logging(settings.log_level)
logger = logging.getLogger(__name__)


def build_services(collections: dict[str, DocumentCollection]) -> tuple[AccountService, StatusService]:
    """Assemble the services from one collection per aggregate."""
    statuses = StatusRepository(collections["statuses"])
    account_service = AccountService(
        AccountRepository(collections["accounts"]),
        UserRepository(collections["users"]),
        statuses,
    )
    return account_service, StatusService(statuses)


def _open_collections(app: FastAPI, config: Settings) -> dict[str, DocumentCollection]:
    if config.store_backend == "memory":
        logger.info("document store using in-memory backend")
        return {name: MemoryCollection(name) for name in COLLECTIONS}

    pool = ConnectionPool(config.database_url, open=False)
    pool.open()
    app.state.pool = pool
    collections: dict[str, DocumentCollection] = {}
    for name in COLLECTIONS:
        collection = PostgresCollection(pool, name)
        collection.ensure_table()
        collections[name] = collection
    logger.info("document store using postgres backend")
    return collections


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (document store, services) for the app lifecycle."""
    app.state.account_service, app.state.status_service = build_services(_open_collections(app, settings))
    try:
        yield
    finally:
        pool = getattr(app.state, "pool", None)
        if pool is not None:
            pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)

register_exception_handlers(app)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", tags=["health"])
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(api_router)
