"""
Response envelope and error handlers.

Every response body has the shape `{"message": str, "data": any}`. Handlers
registered here make FastAPI's own errors follow the same shape:

- HTTPException            -> its status code, `detail` as message
- RequestValidationError   -> 400 (missing/invalid body fields)
- anything else            -> 500 "Server error" (logged with traceback)
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


def envelope(message: str, data: Any = None) -> dict[str, Any]:
    return {"message": message, "data": {} if data is None else data}


def _error_response(status_code: int, message: str, data: Any = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(envelope(message, data)))


def _describe_validation_errors(errors: list[dict[str, Any]]) -> str:
    missing = [str(err["loc"][-1]) for err in errors if err.get("type") == "missing" and err.get("loc")]
    if missing:
        return f"Missing required field(s): {', '.join(missing)}."
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "Invalid request: " + "; ".join(parts)


async def _http_exception_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(exc.status_code, str(exc.detail))


async def _validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    errors = list(exc.errors())
    return _error_response(
        status.HTTP_400_BAD_REQUEST,
        _describe_validation_errors(errors),
        [{"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in errors],
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error method=%s path=%s", request.method, request.url.path)
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Server error")


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
