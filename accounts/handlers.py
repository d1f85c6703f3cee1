"""Translate every failure raised while serving a request into a JSON error response."""
from __future__ import annotations

import logging
from typing import Tuple

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .errors import DomainError, DuplicateKeyError, NotFound, StoreValidationError

logger = logging.getLogger("accounts.handlers")

INTERNAL_ERROR_MESSAGE = "Internal Server Error"


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "error", "message": message})


def route_not_found(request: Request) -> NotFound:
    url = request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"
    return NotFound(f"Route {url} not found")


def translate_error(exc: BaseException) -> Tuple[int, str]:
    """Map ``exc`` to a status code and client-safe message. The first match wins."""

    if isinstance(exc, StoreValidationError):
        return status.HTTP_400_BAD_REQUEST, ". ".join(exc.errors.values())
    if isinstance(exc, DuplicateKeyError):
        return status.HTTP_400_BAD_REQUEST, f"Duplicate field: {exc.fields[0]}. Please use another value!"
    if isinstance(exc, DomainError):
        return exc.status_code, exc.message
    return status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE


async def handle_store_error(_: Request, exc: Exception) -> JSONResponse:
    return error_response(*translate_error(exc))


async def handle_domain_error(_: Request, exc: DomainError) -> JSONResponse:
    return error_response(*translate_error(exc))


async def handle_request_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
    messages = [str(error.get("msg", "")).strip() for error in exc.errors()]
    message = ". ".join(msg for msg in messages if msg) or "Invalid request"
    return error_response(status.HTTP_400_BAD_REQUEST, message)


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
        return error_response(*translate_error(route_not_found(request)))
    return error_response(exc.status_code, str(exc.detail))


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    # Starlette re-raises after this response is sent, so the server logs the traceback.
    logger.warning("Unhandled %s while serving %s %s", type(exc).__name__, request.method, request.url.path)
    return error_response(*translate_error(exc))


def register_exception_handlers(app: FastAPI) -> None:
    """Install the error translation pipeline on ``app``.

    The catch-all ``Exception`` handler runs in Starlette's outermost middleware, so it
    also covers failures raised outside route bodies.
    """

    app.add_exception_handler(StoreValidationError, handle_store_error)
    app.add_exception_handler(DuplicateKeyError, handle_store_error)
    app.add_exception_handler(DomainError, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_unexpected_error)


__all__ = ["error_response", "register_exception_handlers", "route_not_found", "translate_error"]
