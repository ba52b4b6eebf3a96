"""Application factory: routes, logging, tables, and the translation of package errors into HTTP responses."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from castle.api.routes import router
from castle.core.config import configure_logging, get_settings
from castle.core.exceptions import (
    AccessDeniedError,
    AuthenticationError,
    CastleError,
    DuplicateRecordError,
    GameError,
    InvalidRequestError,
    LanguageModelError,
    NotFoundError,
    PersistenceError,
)
from castle.db.database import init_db

logger = logging.getLogger(__name__)

STATUS_CODES: dict[type[CastleError], int] = {
    InvalidRequestError: 400,
    AuthenticationError: 401,
    AccessDeniedError: 403,
    NotFoundError: 404,
    DuplicateRecordError: 409,
    GameError: 422,
    PersistenceError: 502,
    LanguageModelError: 502,
}


def status_code_for(exc: CastleError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in STATUS_CODES:
            return STATUS_CODES[error_type]
    return 500


async def handle_castle_error(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, CastleError)
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, status_code, exc)
    return JSONResponse(status_code=status_code, content={"message": str(exc)})


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    init_db()
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Castle.ai", lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.add_exception_handler(CastleError, handle_castle_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
    app.include_router(router)
    return app


app = create_app()
