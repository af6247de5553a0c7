# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""OrgAuth Server - Main FastAPI application."""

import asyncio
import contextlib
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from orgauth_server.api.errors import register_exception_handlers
from orgauth_server.config import policy, settings
from orgauth_server.database import async_session_maker, init_db
from orgauth_server.deps import get_notifier
from orgauth_server.routers import auth, invitations, organizations
from orgauth_server.services.sweeper import run_invite_sweeper

logger = logging.getLogger(__name__)


def _get_cors_origins() -> list[str]:
    raw = (settings.cors_origins or "*").strip()
    if raw == "*":
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    await init_db()
    if settings.jwt_secret == "change-me-in-production":
        logger.warning("JWT_SECRET is the built-in default - set it before exposing this server")

    sweeper = None
    if settings.invite_sweep_interval_minutes > 0:
        sweeper = asyncio.create_task(
            run_invite_sweeper(
                async_session_maker,
                policy,
                get_notifier(),
                settings.invite_sweep_interval_minutes * 60,
            )
        )
    else:
        logger.info("Invitation expiry sweep disabled (INVITE_SWEEP_INTERVAL_MINUTES=0)")
    app.state.invite_sweeper = sweeper
    yield
    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper


app = FastAPI(
    title="OrgAuth Server",
    description="Multi-tenant authentication, password reset and organization invitations",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info("%s %s %s %.1fms", request.method, request.url.path, response.status_code, duration_ms)
    return response


app.include_router(auth.router, prefix="/api/v1")
app.include_router(organizations.router, prefix="/api/v1")
app.include_router(invitations.router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


def run() -> None:
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("orgauth_server.main:app", host=settings.host, port=settings.port)
