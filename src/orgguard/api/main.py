from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from orgguard.api.responses import REQUEST_ID_HEADER, request_meta
from orgguard.api.routes import audit, health, roles, violations
from orgguard.cache import build_cache_provider
from orgguard.config import get_settings
from orgguard.core.errors import OrgGuardError, StoreError
from orgguard.db.session import dispose_engine, init_engine
from orgguard.logging import bind_request_context, configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_logging()
    init_engine(settings)
    app.state.cache_provider = build_cache_provider(settings)
    yield
    if app.state.cache_provider is not None:
        await app.state.cache_provider.close()
    await dispose_engine()


def _error_response(request: Request, error: OrgGuardError) -> JSONResponse:
    return JSONResponse(
        {
            "error": {"code": error.code, "message": error.message, "details": error.details},
            "meta": request_meta(request),
        },
        status_code=error.status_code,
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(OrgGuardError)
    async def orgguard_error_handler(request: Request, exc: OrgGuardError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.info
        log("request_failed", code=exc.code, message=exc.message, status_code=exc.status_code)
        return _error_response(request, exc)

    @app.exception_handler(SQLAlchemyError)
    async def store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error("policy_store_error", error=str(exc), exc_info=exc)
        return _error_response(request, StoreError("Policy store unavailable"))


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="OrgGuard API",
        version="0.1.0",
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        lifespan=lifespan,
    )

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.cors_origins],
            allow_methods=["*"],
            allow_headers=["*"],
            allow_credentials=True,
            expose_headers=[REQUEST_ID_HEADER],
        )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id
        bind_request_context(request_id=request_id, path=request.url.path)
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    register_exception_handlers(app)

    app.include_router(violations.router, prefix=settings.api_prefix, tags=["violations"])
    app.include_router(audit.router, prefix=settings.api_prefix, tags=["audit"])
    app.include_router(roles.router, prefix=settings.api_prefix, tags=["roles"])
    app.include_router(health.router, tags=["health"])
    return app


app = create_app()
