"""Usage-analytics decorator for route handlers.

with_usage_analytics() wraps an async endpoint that receives a Starlette
Request. The caller gets exactly what the handler produced (same status,
same headers, same bytes); a usage payload describing the exchange is sent
to the watchman collector on the side.

Streamed responses (text/plain or chunked) are tee'd: the client reads one
branch as it arrives while a background task drains the other and ships the
payload once the stream ends. A text/plain response whose body is already in
memory is captured the same way, inline. Buffered responses are captured and
shipped before the response is returned.
"""

import functools
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.requests import Request
from starlette.responses import Response

from paraphraser.core.auth import UserIdentity, resolve_user_identity
from paraphraser.core.config import analytics_disabled, settings
from paraphraser.core.errors import error_response
from paraphraser.features.analytics.logbuffer import LogBuffer, bind_log_buffer
from paraphraser.features.analytics.payload import build_usage_payload, now_ms
from paraphraser.features.analytics.sink import never_raises, send_to_watchman
from paraphraser.features.analytics.tasks import background_tasks
from paraphraser.features.analytics.tee import tee

logger = logging.getLogger("paraphraser")

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
STREAM_CAPTURE_FAILED = "Failed to capture stream"
NON_JSON_RESPONSE = "Non-JSON response"


def _find_request(args: tuple, kwargs: Dict[str, Any]) -> Request:
    for value in (*args, *kwargs.values()):
        if isinstance(value, Request):
            return value
    raise TypeError("with_usage_analytics requires the handler to take a Request argument")


def _as_response(result: Any) -> Response:
    if isinstance(result, Response):
        return result
    return JSONResponse(content=jsonable_encoder(result))


def is_streaming_response(response: Response) -> bool:
    content_type = response.headers.get("content-type", "")
    transfer_encoding = response.headers.get("transfer-encoding", "")
    return transfer_encoding.lower() == "chunked" or "text/plain" in content_type


async def snapshot_request_body(request: Request) -> Any:
    """Parsed body for methods that carry one: JSON, else {"raw": text}, else None.

    Starlette caches the bytes on the request, so the handler's own read is
    unaffected.
    """
    if request.method not in BODY_METHODS:
        return None
    try:
        text = (await request.body()).decode("utf-8")
    except Exception:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return {"raw": text}


@never_raises()
async def _resolve_identity(request: Request) -> Optional[UserIdentity]:
    return await resolve_user_identity(request)


def _charset(response: Response) -> str:
    return getattr(response, "charset", None) or "utf-8"


def _response_head(response: Response) -> Response:
    """Status and headers only; the capture task must not keep the body alive."""
    head = Response(status_code=response.status_code)
    head.raw_headers = list(response.raw_headers)
    head.charset = _charset(response)
    return head


async def _in_memory_body(body: bytes) -> AsyncIterator[bytes]:
    yield body


def buffered_body(response: Response) -> Any:
    try:
        return json.loads(response.body)
    except (AttributeError, TypeError, ValueError):
        return {"message": NON_JSON_RESPONSE}


async def capture_stream(branch: AsyncIterator, content_type: str, charset: str = "utf-8") -> Dict[str, Any]:
    """Read the analytics branch to the end and describe what was streamed."""
    limit = settings.WATCHMAN_CAPTURE_MAX_BYTES
    chunks = []
    size = 0
    truncated = False
    try:
        async for chunk in branch:
            data = bytes(chunk) if isinstance(chunk, (bytes, bytearray, memoryview)) else str(chunk).encode(charset)
            if limit and size + len(data) > limit:
                data = data[: max(0, limit - size)]
                truncated = True
            if data:
                chunks.append(data)
                size += len(data)
        text = b"".join(chunks).decode(charset, errors="replace")
    except Exception as exc:
        logger.warning(f"Stream capture failed: {exc!r}")
        return {"message": STREAM_CAPTURE_FAILED, "isStreaming": True, "contentType": content_type}

    captured = {"text": text, "isStreaming": True, "contentType": content_type}
    if truncated:
        captured["truncated"] = True
    return captured


@never_raises()
async def deliver_usage(
    request: Request,
    response: Response,
    start_time_ms: int,
    request_body: Any,
    response_body: Any,
    user: Optional[UserIdentity],
    log_buffer: LogBuffer,
) -> None:
    payload = build_usage_payload(
        request,
        response,
        start_time_ms,
        request_body,
        response_body,
        user,
        logs=log_buffer.drain(),
    )
    await send_to_watchman(payload)


async def _capture_and_deliver(
    branch: AsyncIterator,
    request: Request,
    response: Response,
    start_time_ms: int,
    request_body: Any,
    user: Optional[UserIdentity],
    log_buffer: LogBuffer,
) -> None:
    response_body = await capture_stream(branch, response.headers.get("content-type", ""), _charset(response))
    await deliver_usage(request, response, start_time_ms, request_body, response_body, user, log_buffer)


def with_usage_analytics(handler: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Response]]:
    @functools.wraps(handler)
    async def wrapped(*args, **kwargs) -> Response:
        if analytics_disabled():
            return _as_response(await handler(*args, **kwargs))

        request = _find_request(args, kwargs)
        start_time_ms = now_ms()
        log_buffer = bind_log_buffer()

        request_body = await snapshot_request_body(request)
        user = await _resolve_identity(request)

        try:
            response = _as_response(await handler(*args, **kwargs))
        except Exception as exc:
            response = error_response(exc, request)
            await deliver_usage(request, response, start_time_ms, request_body, buffered_body(response), user, log_buffer)
            return response

        if not is_streaming_response(response):
            await deliver_usage(request, response, start_time_ms, request_body, buffered_body(response), user, log_buffer)
            return response

        if not hasattr(response, "body_iterator"):
            await _capture_and_deliver(
                _in_memory_body(response.body), request, response, start_time_ms, request_body, user, log_buffer
            )
            return response

        client_branch, analytics_branch = tee(response.body_iterator)
        response.body_iterator = client_branch
        background_tasks.spawn(
            _capture_and_deliver(
                analytics_branch, request, _response_head(response), start_time_ms, request_body, user, log_buffer
            ),
            name=f"usage:{request.method} {request.url.path}",
        )
        return response

    return wrapped
