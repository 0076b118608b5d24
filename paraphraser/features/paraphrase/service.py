"""Paraphrase service.

Validates input, derives the length target the model must respect, builds
the model request for the chosen tone and runs it in buffered or streaming
mode. Upstream failures surface as UpstreamModelError with a generic
message; validation failures as ValidationError.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from paraphraser.core.config import settings
from paraphraser.core.errors import UpstreamModelError, ValidationError
from paraphraser.features.analytics.logbuffer import log_error, log_info, log_warn
from paraphraser.features.paraphrase import model_client
from paraphraser.features.paraphrase.model_client import Content, ModelClient, ModelRequest
from paraphraser.features.paraphrase.prompts import (
    HUMANIZE_OPTION_COUNT,
    HUMANIZE_OPTIONS_SYSTEM_PROMPT,
    HUMANIZE_REWRITE_SYSTEM_PROMPT,
    HUMANIZE_WORD_TARGET,
    LENGTH_INSTRUCTION,
    SUPPORTED_TONES,
    TONE_PROMPTS,
    USER_TEMPLATE,
)

ERROR_EMPTY_TEXT = "Please provide some text to paraphrase."
ERROR_INVALID_TONE = "Invalid tone selected."
ERROR_INVALID_BODY = "Invalid request body."
ERROR_UPSTREAM = "Something went wrong."

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")


@dataclass(frozen=True)
class LengthTarget:
    words: int
    paragraphs: int


def validate_input(text: Any, tone: Any) -> Tuple[str, str]:
    if not isinstance(text, str) or not text.strip():
        raise ValidationError(ERROR_EMPTY_TEXT)
    if not isinstance(tone, str) or tone not in SUPPORTED_TONES:
        raise ValidationError(ERROR_INVALID_TONE)
    return text, tone


def count_words(text: str) -> int:
    return len(text.split())


def count_paragraphs(text: str) -> int:
    return len([block for block in _PARAGRAPH_BREAK.split(text.strip()) if block.strip()])


def length_target(text: str) -> LengthTarget:
    return LengthTarget(words=count_words(text), paragraphs=count_paragraphs(text))


def within_tolerance(target_words: int, output: str, tolerance: int) -> bool:
    return abs(count_words(output) - target_words) <= tolerance


def build_model_request(
    text: str,
    tone: str,
    *,
    humanize_mode: str = "rewrite",
    tolerance: Optional[int] = None,
    max_output_tokens: Optional[int] = None,
) -> ModelRequest:
    tolerance = settings.WORD_COUNT_TOLERANCE if tolerance is None else tolerance
    target = length_target(text)
    instruction = TONE_PROMPTS[tone]
    length = LENGTH_INSTRUCTION.format(words=target.words, paragraphs=target.paragraphs)
    system_instruction = None

    if tone == "humanize":
        if humanize_mode == "options":
            system_instruction = HUMANIZE_OPTIONS_SYSTEM_PROMPT.format(count=HUMANIZE_OPTION_COUNT, tolerance=tolerance)
        else:
            system_instruction = HUMANIZE_REWRITE_SYSTEM_PROMPT.format(tolerance=tolerance)
            length = f"{length}\n{HUMANIZE_WORD_TARGET.format(words=target.words, tolerance=tolerance)}"

    return ModelRequest(
        contents=[Content(role="user", text=USER_TEMPLATE.format(instruction=instruction, length=length, text=text))],
        max_output_tokens=max_output_tokens or settings.MODEL_MAX_OUTPUT_TOKENS,
        system_instruction=system_instruction,
    )


def extract_options(raw: str) -> Optional[List[str]]:
    """Pull a JSON array of strings out of model text, or None."""
    match = _JSON_ARRAY.search(raw or "")
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except ValueError:
        return None
    if not isinstance(parsed, list) or not parsed:
        return None
    options = [item.strip() for item in parsed if isinstance(item, str) and item.strip()]
    return options or None


def _client() -> ModelClient:
    try:
        return model_client.get_model_client()
    except Exception as exc:
        log_error("paraphrase.model_client_unavailable", {"error": type(exc).__name__})
        raise UpstreamModelError(ERROR_UPSTREAM) from exc


async def paraphrase(text: str, tone: str) -> Dict[str, Any]:
    """Buffered mode: one model call, returns {"result"} or {"options"}."""
    humanize_mode = settings.HUMANIZE_MODE
    request = build_model_request(text, tone, humanize_mode=humanize_mode)
    target = length_target(text)
    log_info("paraphrase.request", {"tone": tone, "words": target.words, "paragraphs": target.paragraphs, "stream": False})

    client = _client()
    try:
        raw = await client.generate(request)
    except Exception as exc:
        log_error("paraphrase.model_failed", {"tone": tone, "error": type(exc).__name__})
        raise UpstreamModelError(ERROR_UPSTREAM) from exc

    if tone == "humanize" and humanize_mode == "options":
        options = extract_options(raw)
        if options:
            return {"options": options}
        log_warn("paraphrase.options_unparsed", {"tone": tone})

    return {"result": raw}


async def open_paraphrase_stream(text: str, tone: str) -> AsyncIterator[bytes]:
    """Streaming mode.

    The first fragment is fetched before returning so that a failing model
    call still becomes a 500; later failures break the stream.
    """
    request = build_model_request(text, tone, humanize_mode="rewrite")
    target = length_target(text)
    log_info("paraphrase.request", {"tone": tone, "words": target.words, "paragraphs": target.paragraphs, "stream": True})

    client = _client()
    fragments = client.stream(request)
    try:
        first = await fragments.__anext__()
    except StopAsyncIteration:
        first = ""
    except Exception as exc:
        log_error("paraphrase.model_failed", {"tone": tone, "error": type(exc).__name__})
        raise UpstreamModelError(ERROR_UPSTREAM) from exc

    return _forward(first, fragments, tone, target)


async def _forward(first: str, fragments: AsyncIterator[str], tone: str, target: LengthTarget) -> AsyncIterator[bytes]:
    produced = [first] if first else []
    if first:
        yield first.encode("utf-8")
    try:
        async for fragment in fragments:
            produced.append(fragment)
            yield fragment.encode("utf-8")
    except Exception as exc:
        log_error("paraphrase.stream_failed", {"tone": tone, "error": type(exc).__name__})
        raise

    output = "".join(produced)
    if tone == "humanize" and not within_tolerance(target.words, output, settings.WORD_COUNT_TOLERANCE):
        log_warn(
            "paraphrase.word_count_drift",
            {
                "tone": tone,
                "target_words": target.words,
                "output_words": count_words(output),
                "tolerance": settings.WORD_COUNT_TOLERANCE,
            },
        )
    log_info("paraphrase.stream_complete", {"tone": tone, "output_words": count_words(output)})
