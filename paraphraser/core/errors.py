"""Error normalization and handlers.

Every error body the service emits has the shape ``{"error": <message>}``.
"""

import logging
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from starlette.requests import Request

from paraphraser.core.logging import get_request_id

GENERIC_ERROR_MESSAGE = "Internal Server Error"


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class UpstreamModelError(AppError):
    """The language model call failed or returned something unusable."""
    code = "upstream_model_error"
    status_code = 500


class AnalyticsError(AppError):
    """Raised inside the analytics path only; never reaches a client."""
    code = "analytics_error"
    status_code = 500


def _extract_request_id(request: Optional[Request], fallback: Optional[str] = None) -> str:
    state_rid = getattr(request.state, "request_id", None) if request is not None else None
    return state_rid or get_request_id() or fallback or str(uuid4())


def _error_payload(message: str) -> dict:
    return {"error": message}


def error_response(exc: Exception, request: Optional[Request] = None) -> JSONResponse:
    """Render any exception the way the app-level handlers do.

    Shared with the analytics wrapper so that wrapping a handler never
    changes the status or body a failing request produces.
    """
    logger = logging.getLogger("paraphraser")
    if isinstance(exc, AppError):
        rid = exc.request_id or _extract_request_id(request)
        status_code = exc.status_code
        message = exc.message
        log_level = logging.ERROR if status_code >= 500 else logging.WARNING
        logger.log(
            log_level,
            "app.error",
            extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": status_code},
        )
    elif isinstance(exc, HTTPException):
        rid = _extract_request_id(request)
        status_code = exc.status_code
        message = exc.detail if isinstance(exc.detail, str) and exc.detail else "HTTP error"
        logger.warning("http.error", extra={"request_id": rid, "status": status_code})
    else:
        rid = _extract_request_id(request)
        status_code = 500
        message = GENERIC_ERROR_MESSAGE
        logger.error(
            "unhandled.exception",
            exc_info=(type(exc), exc, exc.__traceback__),
            extra={"request_id": rid, "error_code": "internal_error"},
        )

    response = JSONResponse(status_code=status_code, content=_error_payload(message))
    response.headers["x-request-id"] = rid
    return response


async def app_error_handler(request: Request, exc: AppError):
    return error_response(exc, request)


async def http_error_handler(request: Request, exc: HTTPException):
    return error_response(exc, request)


async def unhandled_exception_handler(request: Request, exc: Exception):
    return error_response(exc, request)
