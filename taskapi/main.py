from __future__ import annotations

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taskapi.assignments import service as assignments
from taskapi.core import db
from taskapi.core.logging_setup import setup_logging
from taskapi.core.responses import install_error_handlers
from taskapi.tasks import router as tasks_router
from taskapi.users import router as users_router

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000"


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw not in {"0", "false", "no", "off"}


def cors_origins() -> list[str]:
    raw = os.environ.get("CORS_ALLOW_ORIGINS", DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(_: FastAPI):
    setup_logging()
    # Initialize the DB pool once per process.
    await db.init_pool()
    try:
        if _env_flag("DB_BOOTSTRAP_SCHEMA", True):
            await db.ensure_schema()
        if _env_flag("RECONCILE_ON_STARTUP", False):
            async with db.transaction():
                await assignments.reconcile()
        yield
    finally:
        await db.close_pool()


app = FastAPI(title="taskapi", lifespan=lifespan)

# Allow a local frontend dev server to call this API from the browser.
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)

app.include_router(tasks_router.router, tags=["tasks"])
app.include_router(users_router.router, tags=["users"])
# Same routes under /api for clients that use the prefixed paths.
app.include_router(tasks_router.router, prefix="/api", include_in_schema=False)
app.include_router(users_router.router, prefix="/api", include_in_schema=False)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/")
def root() -> dict:
    return {"message": "taskapi", "data": {"resources": ["/tasks", "/users"]}}
