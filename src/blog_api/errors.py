"""Error hierarchy for the Blog Post API and its HTTP mapping."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from blog_api.metrics import store_errors_total

log = structlog.get_logger()


class BlogApiError(Exception):
    """Base error; carries the HTTP status it maps to."""

    status_code = 500

    def __init__(self, detail: Any) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(BlogApiError):
    """Raised when a request body is missing required fields or has none to apply."""

    status_code = 400


class NotFoundError(BlogApiError):
    """Raised when no post exists for the requested id."""

    status_code = 404


class StoreError(BlogApiError):
    """Raised when the document store fails. Never retried."""

    status_code = 500


async def _blog_api_error_handler(request: Request, exc: BlogApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def _store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    store_errors_total.add(1, {"path": request.url.path})
    await log.aerror(
        "store_error",
        method=request.method,
        path=request.url.path,
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"detail": "Document store unavailable"})


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"detail": errors})


def register_exception_handlers(app: FastAPI) -> None:
    """Map the error hierarchy and FastAPI body validation onto JSON responses."""
    app.add_exception_handler(StoreError, _store_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(BlogApiError, _blog_api_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(
        RequestValidationError,
        _request_validation_handler,  # type: ignore[arg-type]
    )
