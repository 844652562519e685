"""
FastAPI application entry point for the data-access service.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nowandlater.config import get_settings
from nowandlater.errors import BothBackendsFailed, NeedsRefresh, NowAndLaterError
from nowandlater.routes import router

logger = logging.getLogger(__name__)


def _cause_chain(exc: BaseException) -> list[str]:
    chain = []
    current: BaseException | None = exc
    while current is not None and len(chain) < 5:
        chain.append(f"{type(current).__name__}: {current}")
        current = current.__cause__
    return chain


def _error_details(exc: NowAndLaterError) -> dict:
    details = {**exc.to_dict(), "backend": exc.backend, "causes": _cause_chain(exc)}
    if isinstance(exc, BothBackendsFailed):
        details["primaryError"] = str(exc.primary_error)
        details["legacyError"] = str(exc.legacy_error)
    return details


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Now & Later data API", version="0.1.0")
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(NowAndLaterError)
    async def handle_error(request: Request, exc: NowAndLaterError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "%s %s failed: %s",
                request.method,
                request.url.path,
                " <- ".join(_cause_chain(exc)),
            )
        else:
            logger.info(
                "%s %s -> %d %s", request.method, request.url.path,
                exc.status_code, exc.error_code,
            )
        body: dict = {"success": False, "error": exc.detail}
        if isinstance(exc, NeedsRefresh):
            body["needsRefresh"] = True
        if settings.is_development:
            body["details"] = _error_details(exc)
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(RequestValidationError)
    async def handle_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        body: dict = {"success": False, "error": "Invalid request"}
        if settings.is_development:
            body["details"] = [
                {"loc": list(error.get("loc", ())), "msg": error.get("msg")}
                for error in exc.errors()
            ]
        return JSONResponse(status_code=400, content=body)

    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
