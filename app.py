"""Application factory and entry point.

Run with:
    uvicorn app:app --reload
"""
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api import auth_router
from config import Settings, load_config
from contract import MSG_INTERNAL_ERROR
from logger import logger, setup_logging
from service import AuthService
from store import CredentialStore

MSG_INVALID_BODY = "Invalid request body"


async def _reap_expired_sessions(service: AuthService, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        await service.sweep_expired_sessions()


def _install_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def _bad_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info(f"http: rejected body for {request.url.path}")
        return JSONResponse(status_code=400, content={"error": MSG_INVALID_BODY})

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.opt(exception=exc).error(
            f"http: unhandled error on {request.method} {request.url.path}"
        )
        return JSONResponse(status_code=500, content={"error": MSG_INTERNAL_ERROR})


def create_app(
    settings: Settings | None = None,
    store: CredentialStore | None = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    Accepts explicit settings and an explicit store for testing.  The
    store is opened and closed by the application lifespan.
    """
    if settings is None:
        settings = load_config()
    setup_logging(settings.log_level, settings.log_file)

    if store is None:
        store = CredentialStore(settings.db_path)
    service = AuthService(
        store,
        session_ttl=timedelta(days=settings.session_ttl_days),
        hash_iterations=settings.hash_iterations,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await store.init()
        reaper = None
        if settings.sweep_interval_seconds > 0:
            reaper = asyncio.create_task(
                _reap_expired_sessions(service, settings.sweep_interval_seconds)
            )
            logger.info(
                f"app: session reaper every {settings.sweep_interval_seconds}s"
            )
        try:
            yield
        finally:
            if reaper is not None:
                reaper.cancel()
                with suppress(asyncio.CancelledError):
                    await reaper
            await store.close()

    app = FastAPI(
        title="Expense Tracker Auth API",
        description=(
            "Account registration, password login and cookie-based "
            "sessions for the expense tracker."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.auth_service = service
    _install_error_handlers(app)
    app.include_router(auth_router)
    return app


# Default app instance for `uvicorn app:app`
app = create_app()
