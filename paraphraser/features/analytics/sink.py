"""Best-effort delivery of usage payloads to the watchman collector.

At-most-once: no retry, no queueing. Nothing in here raises to its caller.
"""

import functools
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from paraphraser.core.config import analytics_disabled, settings
from paraphraser.core.errors import AnalyticsError
from paraphraser.core.logging import log_event
from paraphraser.features.analytics.payload import UsagePayload

logger = logging.getLogger("paraphraser")

T = TypeVar("T")

_transport: Optional[httpx.AsyncBaseTransport] = None


def set_transport_for_tests(transport: Optional[httpx.AsyncBaseTransport]) -> None:
    """Route collector calls through a fake transport (no network)."""
    global _transport
    _transport = transport


def never_raises(default: Any = None) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[Optional[T]]]]:
    """Error boundary for analytics coroutines.

    Any exception is logged as a warning and replaced by ``default``.
    Cancellation still propagates.
    """

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            try:
                return await fn(*args, **kwargs)
            except Exception as exc:
                log_event(
                    "warning",
                    f"Analytics step {fn.__name__} failed: {exc!r}",
                    event_type="analytics",
                    error_code=getattr(exc, "code", None) or type(exc).__name__,
                )
                return default

        return wrapper

    return decorator


def ingest_url(product: str, base_url: Optional[str] = None) -> str:
    base = (base_url if base_url is not None else settings.WATCHMAN_BASE_URL).rstrip("/")
    return f"{base}/api/ingest/{product}"


@never_raises()
async def send_to_watchman(payload: UsagePayload) -> None:
    if analytics_disabled():
        return

    if not settings.WATCHMAN_BASE_URL:
        logger.warning("WATCHMAN_BASE_URL not configured")
        return

    body = payload.to_wire()
    async with httpx.AsyncClient(transport=_transport, timeout=settings.WATCHMAN_TIMEOUT_SECONDS) as client:
        response = await client.post(
            ingest_url(payload.product),
            json=body,
            headers={"Cache-Control": "no-store"},
        )

    if not response.is_success:
        raise AnalyticsError(f"Watchman API call failed: {response.status_code}")
