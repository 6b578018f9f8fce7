"""Entrypoint for the media catalog FastAPI service"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api import auth
from api.dependencies import close_clients, get_resolver
from api.errors import register_error_handlers
from api.routes import collections, media, settings as settings_routes, storage
from core.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    get_resolver().load()
    yield
    await close_clients()


app = FastAPI(
    title="Media Tracker API",
    version="0.1.0",
    description="Personal media catalog persisted as JSON in remote repositories",
    lifespan=lifespan,
)

register_error_handlers(app)
auth.install_auth_gate(app)
app.include_router(auth.router)
app.include_router(media.router)
app.include_router(collections.router)
app.include_router(settings_routes.router)
app.include_router(storage.router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
