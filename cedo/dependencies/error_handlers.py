import logging
import traceback
from os import getenv

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError

from cedo.exceptions import AppException, ConflictError, InternalError

logger = logging.getLogger(__name__)


def is_development() -> bool:
    return getenv("ENVIRONMENT", "development").lower() in ("development", "dev", "local")


def _render(exc: AppException) -> JSONResponse:
    body = exc.to_dict()
    if is_development() and exc.status_code >= 500:
        body["traceback"] = traceback.format_exc()
    return JSONResponse(status_code=exc.status_code, content=body)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.__class__.__name__, request.method, request.url.path, exc.detail)
    return _render(exc)


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Unique or foreign-key violation that escaped the services -> 409"""
    reason = str(getattr(exc, "orig", None) or exc)
    duplicate = any(word in reason.lower() for word in ("unique", "duplicate"))
    return _render(ConflictError(
        message="Resource already exists" if duplicate else "Database integrity error",
        detail=reason,
    ))


async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    reason = str(getattr(exc, "orig", None) or exc)
    logger.error("Database unavailable on %s %s: %s", request.method, request.url.path, reason)
    return _render(InternalError(
        message="Database operation failed",
        detail=reason if is_development() else "Database operation failed",
    ))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _render(InternalError(
        message="Internal server error",
        detail=str(exc) if is_development() else "An unexpected error occurred",
    ))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(OperationalError, operational_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
