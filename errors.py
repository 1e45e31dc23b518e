import traceback
from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

import settings

logger = structlog.get_logger(__name__)

HIDDEN_FIELDS = {"password_hash"}


class AppError(Exception):
    """Expected, user-correctable failure carrying the HTTP status to answer with."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


# ----- Response envelope -----

def to_public(value: Any) -> Any:
    """Render a stored document for the API: camelCase keys, string ids, no secrets."""
    if isinstance(value, dict):
        return {
            ("_id" if k == "_id" else to_camel(k)): to_public(v)
            for k, v in value.items()
            if k not in HIDDEN_FIELDS
        }
    if isinstance(value, list):
        return [to_public(v) for v in value]
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def ok(data: Any = None, message: Optional[str] = None, count: Optional[int] = None) -> dict:
    body: dict = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = to_public(data)
    if count is not None:
        body["count"] = count
    return body


def _fail(status_code: int, message: str, stack: Optional[str] = None) -> JSONResponse:
    body = {"success": False, "message": message}
    if stack and not settings.IS_PRODUCTION:
        body["stack"] = stack
    return JSONResponse(status_code=status_code, content=body)


# ----- Handlers -----

def _first_error_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    err = errors[0]
    ctx_error = (err.get("ctx") or {}).get("error")
    if isinstance(ctx_error, Exception):
        return str(ctx_error)
    field = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
    return f"{field}: {err['msg']}" if field else err["msg"]


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("request_failed", method=request.method, path=request.url.path, message=exc.message)
    else:
        logger.info("request_rejected", method=request.method, path=request.url.path,
                    status=exc.status_code, message=exc.message)
    return _fail(exc.status_code, exc.message)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 404 and message == "Not Found":
        message = f"Route not found: {request.url.path}"
    return _fail(exc.status_code, message)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    message = _first_error_message(exc)
    logger.info("request_invalid", method=request.method, path=request.url.path, message=message)
    return _fail(400, message)


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", method=request.method, path=request.url.path)
    return _fail(500, "Internal Server Error", "".join(traceback.format_exception(exc)))


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
