"""Paraphrase API.

POST /api/paraphrase with {"text", "tone", "stream"?}. Buffered calls answer
{"result"} (or {"options"} for humanize in options mode); streaming calls
answer text/plain chunks as the model produces them.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.responses import Response

from paraphraser.core.config import settings
from paraphraser.core.errors import ValidationError
from paraphraser.features.analytics.wrapper import with_usage_analytics
from paraphraser.features.paraphrase.service import (
    ERROR_INVALID_BODY,
    open_paraphrase_stream,
    paraphrase,
    validate_input,
)

logger = logging.getLogger("paraphraser")

router = APIRouter(prefix="/api", tags=["paraphrase"])


@router.post("/paraphrase")
@with_usage_analytics
async def paraphrase_endpoint(request: Request) -> Response:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError(ERROR_INVALID_BODY)
    if not isinstance(body, dict):
        raise ValidationError(ERROR_INVALID_BODY)

    text, tone = validate_input(body.get("text"), body.get("tone"))
    stream = body.get("stream")
    if stream is None:
        stream = settings.PARAPHRASE_STREAM_DEFAULT
    elif not isinstance(stream, bool):
        raise ValidationError(ERROR_INVALID_BODY)
    logger.info(f"[/api/paraphrase] POST received, tone={tone}, stream={stream}")

    if stream:
        chunks = await open_paraphrase_stream(text, tone)
        return StreamingResponse(
            chunks,
            media_type="text/plain; charset=utf-8",
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
            },
        )

    return JSONResponse(await paraphrase(text, tone))
