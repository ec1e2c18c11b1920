"""
Global exception handlers for the REST API.

Every error response has the same body:
    {"code": "...", "message": "...", "detail": ...?}

Mapping:
  • PgManagerError with public=True  → its status_code and message
  • PgManagerError with public=False → 500, generic message
  • RequestValidationError           → 422 with a simplified error list
  • HTTPException                    → its status code and detail
  • anything else                    → 500, generic message

Non-public errors can name hosts or orphaned databases, so their text
only ever reaches the server log.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pgmanager.errors import PgManagerError

logger = logging.getLogger(__name__)

__all__ = ["register_exception_handlers"]

INTERNAL_MESSAGE = "internal server error"


def _problem(
    *,
    status_code: int,
    code: str,
    message: str,
    detail: Any | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    payload: dict[str, Any] = {"code": code, "message": message}
    if detail is not None:
        payload["detail"] = detail
    return JSONResponse(
        status_code=status_code,
        content=payload,
        media_type="application/problem+json",
        headers=headers,
    )


def error_code(exc: PgManagerError) -> str:
    """InvalidPRNumber → INVALID_PR_NUMBER."""
    name = type(exc).__name__
    return re.sub(r"(?<=[a-z])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])", "_", name).upper()


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PgManagerError)
    async def pgmanager_error_handler(
        request: Request,
        exc: PgManagerError,
    ) -> JSONResponse:
        if exc.public:
            logger.info(
                "%s %s -> %d (%s)",
                request.method, request.url.path, exc.status_code, exc,
            )
            return _problem(
                status_code=exc.status_code,
                code=error_code(exc),
                message=str(exc),
            )

        logger.error(
            "%s %s failed: %s: %s",
            request.method, request.url.path, type(exc).__name__, exc,
        )
        return _problem(status_code=500, code="INTERNAL_ERROR", message=INTERNAL_MESSAGE)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = [
            {"loc": e.get("loc"), "msg": e.get("msg"), "type": e.get("type")}
            for e in exc.errors()
        ]
        logger.info(
            "Request validation failed: %s %s (%d errors)",
            request.method, request.url.path, len(errors),
        )
        return _problem(
            status_code=422,
            code="INVALID_INPUT",
            message="request validation failed",
            detail=errors,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request,
        exc: StarletteHTTPException,
    ) -> JSONResponse:
        logger.warning(
            "HTTPException: %s %s -> %d (%s)",
            request.method, request.url.path, exc.status_code, exc.detail,
        )
        return _problem(
            status_code=exc.status_code,
            code="HTTP_ERROR",
            message=str(exc.detail) if exc.detail else "HTTP error",
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        logger.exception(
            "Unhandled exception: %s %s",
            request.method, request.url.path,
            exc_info=exc,
        )
        return _problem(status_code=500, code="INTERNAL_ERROR", message=INTERNAL_MESSAGE)
