from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from packages.features.accounts.accounts import AccountInactive, AccountNotFound, AuthenticationFailed
from packages.features.bookings.bookings import BookingExpired, BookingNotFound
from packages.features.pricing.markups import MarkupNotFound
from services.hotels.supplier.client import SupplierError

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (AuthenticationFailed, 401),
    (AccountInactive, 403),
    (AccountNotFound, 404),
    (MarkupNotFound, 404),
    (BookingNotFound, 404),
    (BookingExpired, 422),
    (SupplierError, 502),
)


def http_error(exc: ValueError) -> HTTPException:
    """Translate a domain error into the HTTP status the API answers with."""
    for cls, status in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return HTTPException(status_code=status, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def ok(message: str, data=None) -> dict:
    body = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    return body


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def _http_exception(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        msg = first.get("msg") or "Invalid request"
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": f"{field}: {msg}" if field else msg},
        )

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})
