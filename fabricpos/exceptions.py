"""
Domain errors and the handlers that turn every failure into the same JSON shape:

    {"success": false, "error": {"message": "...", "details": [...]}, "request_id": "..."}
"""
import logging
import traceback
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, NoResultFound, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from fabricpos.config import settings

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Error raised by routers and crud functions when a business rule fails."""

    def __init__(self, message: str, status_code: int = 400, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details

    @staticmethod
    def not_found(resource: str = "Resource") -> "AppError":
        return AppError(f"{resource} not found", status.HTTP_404_NOT_FOUND)

    @staticmethod
    def bad_request(message: str, details: Optional[Any] = None) -> "AppError":
        logger.info(f"Bad request: {message}")
        return AppError(message, status.HTTP_400_BAD_REQUEST, details)

    @staticmethod
    def unauthorized(message: str = "Authentication required") -> "AppError":
        logger.warning(f"Unauthorized: {message}")
        return AppError(message, status.HTTP_401_UNAUTHORIZED)

    @staticmethod
    def forbidden(message: str = "Insufficient permissions") -> "AppError":
        logger.warning(f"Forbidden: {message}")
        return AppError(message, status.HTTP_403_FORBIDDEN)

    @staticmethod
    def conflict(message: str) -> "AppError":
        return AppError(message, status.HTTP_409_CONFLICT)

    @staticmethod
    def bad_gateway(message: str) -> "AppError":
        logger.error(f"Upstream failure: {message}")
        return AppError(message, status.HTTP_502_BAD_GATEWAY)

    @staticmethod
    def server_error(message: str = "Internal server error") -> "AppError":
        logger.error(message)
        return AppError(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


def error_body(request: Request, message: str, details: Any = None, exc: Optional[BaseException] = None) -> dict:
    body = {"success": False, "error": {"message": message}}
    if details:
        body["error"]["details"] = details
    if exc is not None and settings.is_development:
        body["error"]["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        body["request_id"] = request_id
    return body


def _validation_details(exc: RequestValidationError) -> list:
    details = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        details.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return details


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=error_body(request, exc.message, exc.details))


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = f"Route {request.url.path} not found"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, message),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(request, "Validation failed", _validation_details(exc)),
    )


async def integrity_error_handler(request: Request, exc: IntegrityError):
    text = str(exc.orig).lower() if exc.orig is not None else str(exc).lower()
    logger.warning(f"Integrity error on {request.method} {request.url.path}: {text}")
    if "unique" in text or "duplicate" in text:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=error_body(request, "A record with this information already exists"),
        )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(request, "Invalid reference or missing required field"),
    )


async def no_result_handler(request: Request, exc: NoResultFound):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=error_body(request, "Record not found"))


async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Database error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(request, "Database operation failed", exc=exc),
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    message = "Internal server error" if settings.is_production else (str(exc) or "Internal server error")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(request, message, exc=exc),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(NoResultFound, no_result_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
