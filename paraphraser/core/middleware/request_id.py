import logging
import time
from typing import Any, AsyncIterator, Dict
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from paraphraser.core.logging import LOGGER_NAME, latency_bucket_ms, request_id_ctx_var

logger = logging.getLogger(LOGGER_NAME)

REQUEST_ID_HEADER = "x-request-id"
QUIET_PATHS = frozenset({"/healthz", "/readyz"})


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the exchange and log one line when it completes.

    A text/plain body is a model stream, so its completion line is written
    after the last chunk leaves, with the total latency and bytes sent; the
    time to headers is kept as first_byte_bucket. Health checks log at DEBUG.
    """

    def __init__(self, app, header_name: str = REQUEST_ID_HEADER):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx_var.reset(token)

        response.headers[self.header_name] = rid
        level = logging.DEBUG if request.url.path in QUIET_PATHS else logging.INFO
        fields = {
            "request_id": rid,
            "path": request.url.path,
            "method": request.method,
            "status": response.status_code,
            "first_byte_bucket": latency_bucket_ms(_elapsed_ms(start)),
        }

        if "text/plain" in response.headers.get("content-type", "") and hasattr(response, "body_iterator"):
            response.body_iterator = _log_after_body(response.body_iterator, start, level, fields)
        else:
            _log_complete(level, fields, start)
        return response


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _log_complete(level: int, fields: Dict[str, Any], start: float) -> None:
    logger.log(level, "request.complete", extra={**fields, "latency_bucket": latency_bucket_ms(_elapsed_ms(start))})


async def _log_after_body(body: AsyncIterator, start: float, level: int, fields: Dict[str, Any]) -> AsyncIterator:
    sent = 0
    try:
        async for chunk in body:
            sent += len(chunk)
            yield chunk
    finally:
        _log_complete(level, {**fields, "streamed": True, "bytes_sent": sent}, start)
