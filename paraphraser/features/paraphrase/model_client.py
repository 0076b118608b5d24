"""Language model adapter (Groq chat completions).

Requests are described provider-neutrally as a role-tagged content list plus
a small config bag; this module maps them onto Groq's chat API.

One client (and so one connection pool) is shared per process for a given
key, model and timeout; the app lifespan closes them on shutdown.
"""

import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Literal, Optional, Tuple

import groq

from paraphraser.core.config import settings

logger = logging.getLogger("paraphraser")


@dataclass(frozen=True)
class Content:
    role: Literal["user", "model"]
    text: str


@dataclass(frozen=True)
class ModelRequest:
    contents: List[Content] = field(default_factory=list)
    max_output_tokens: int = 8192
    system_instruction: Optional[str] = None


def to_chat_messages(request: ModelRequest) -> List[Dict[str, str]]:
    messages = []
    if request.system_instruction:
        messages.append({"role": "system", "content": request.system_instruction})
    for content in request.contents:
        role = "assistant" if content.role == "model" else "user"
        messages.append({"role": role, "content": content.text})
    return messages


class ModelClient:
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, timeout: Optional[float] = None):
        self.model = model or settings.GROQ_MODEL
        self._client = groq.AsyncGroq(
            api_key=api_key or settings.GROQ_API_KEY,
            timeout=timeout if timeout is not None else settings.MODEL_TIMEOUT_SECONDS,
        )

    async def generate(self, request: ModelRequest) -> str:
        """Single blocking call returning the full text."""
        completion = await self._client.chat.completions.create(
            messages=to_chat_messages(request),
            model=self.model,
            max_tokens=request.max_output_tokens,
            stream=False,
        )
        return completion.choices[0].message.content or ""

    async def stream(self, request: ModelRequest) -> AsyncIterator[str]:
        """Yield text fragments as the model produces them."""
        logger.info(f"[model] streaming from {self.model}")
        stream = await self._client.chat.completions.create(
            messages=to_chat_messages(request),
            model=self.model,
            max_tokens=request.max_output_tokens,
            stream=True,
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            token = chunk.choices[0].delta.content
            if token:
                yield token

    async def aclose(self) -> None:
        await self._client.close()


_clients: Dict[Tuple, ModelClient] = {}


def get_model_client() -> ModelClient:
    key = (groq.AsyncGroq, settings.GROQ_API_KEY, settings.GROQ_MODEL, settings.MODEL_TIMEOUT_SECONDS)
    client = _clients.get(key)
    if client is None:
        client = _clients[key] = ModelClient()
    return client


async def close_model_clients() -> None:
    """Close every cached client; the next get_model_client() builds a fresh one."""
    clients = list(_clients.values())
    _clients.clear()
    for client in clients:
        try:
            await client.aclose()
        except Exception as exc:
            logger.warning(f"[model] closing client failed: {exc!r}")
