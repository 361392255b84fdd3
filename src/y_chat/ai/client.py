"""Streaming chat-completions client for OpenAI-compatible providers."""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional, Sequence

import httpx

from y_chat.ai.sse import SSEEventReader, event_data
from y_chat.config import ProviderConfig
from y_chat.core.models import BotConfig, Message
from y_chat.core.types import ErrorType
from y_chat.log import get_logger

logger = get_logger(__name__)

DEFAULT_API_PATH = "/chat/completions"
_EPHEMERAL = {"type": "ephemeral"}

_STATUS_ERRORS: dict[int, tuple[ErrorType, str]] = {
    401: (ErrorType.AUTH, "Authentication failed, check the bot's API key"),
    402: (ErrorType.CREDITS, "Insufficient credits for this provider"),
    408: (ErrorType.TIMEOUT, "The provider timed out"),
    429: (ErrorType.RATE_LIMIT, "Rate limit exceeded, please try again later"),
}


class ProviderError(Exception):
    """Typed failure of a provider request, carrying the HTTP status involved."""

    def __init__(self, error_type: ErrorType, status: int, message: str):
        super().__init__(message)
        self.error_type = error_type
        self.status = status
        self.message = message

    @classmethod
    def from_status(cls, status: int, detail: str = "") -> ProviderError:
        error_type, message = _STATUS_ERRORS.get(
            status, (ErrorType.PROVIDER, f"Provider returned HTTP {status}")
        )
        if detail:
            message = f"{message}: {detail}"
        return cls(error_type, status, message)

    def to_payload(self) -> dict[str, Any]:
        return {
            "error": {
                "message": self.message,
                "type": str(self.error_type),
                "status": self.status,
            }
        }


@dataclass
class StreamChunk:
    """One incremental fragment of a streamed reply."""

    content: str = ""
    reasoning_content: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None


class ChatProvider(ABC):
    """Abstract base class for streaming model backends."""

    @abstractmethod
    def stream_chat(
        self, messages: Sequence[Message], system_prompt: Optional[str] = None
    ) -> AsyncIterator[StreamChunk]:
        """Yield reply fragments in arrival order until the provider ends the stream."""
        ...


class OpenAIFormatProvider(ChatProvider):
    """Provider speaking the OpenAI chat-completions SSE format (OpenRouter, OpenAI, ...).

    The whole request, from issuing it to the last byte read, must finish
    within ``config.request_timeout`` seconds.
    """

    def __init__(
        self,
        bot: BotConfig,
        config: ProviderConfig,
        client: httpx.AsyncClient | None = None,
    ):
        self._bot = bot
        self._config = config
        self._client = client

    @property
    def _is_claude(self) -> bool:
        return "claude" in self._bot.model.lower()

    def prepare_messages(
        self, messages: Sequence[Message], system_prompt: Optional[str] = None
    ) -> list[dict[str, Any]]:
        """Convert chat messages to request messages with text content blocks.

        Claude models get an ephemeral cache marker on the system prompt and on
        the last text block of the last user message.
        """
        prepared: list[dict[str, Any]] = []

        if system_prompt:
            block: dict[str, Any] = {"type": "text", "text": system_prompt}
            if self._is_claude:
                block["cache_control"] = dict(_EPHEMERAL)
            prepared.append({"role": "system", "content": [block]})

        for message in messages:
            if isinstance(message.content, str):
                content = [{"type": "text", "text": message.content}]
            else:
                content = [part.model_dump() for part in message.content]
            prepared.append({"role": str(message.role), "content": content})

        if self._is_claude:
            for entry in reversed(prepared):
                if entry["role"] != "user":
                    continue
                text_parts = [p for p in entry["content"] if p.get("type") == "text"]
                if text_parts:
                    text_parts[-1]["cache_control"] = dict(_EPHEMERAL)
                else:
                    entry["content"].append(
                        {"type": "text", "text": "...", "cache_control": dict(_EPHEMERAL)}
                    )
                break

        return prepared

    def build_request_body(
        self, messages: Sequence[Message], system_prompt: Optional[str] = None
    ) -> dict[str, Any]:
        bot = self._bot
        body: dict[str, Any] = {
            "model": bot.model,
            "messages": self.prepare_messages(messages, system_prompt),
            "stream": True,
        }
        if bot.openrouter_config and bot.openrouter_config.get("provider"):
            body["provider"] = bot.openrouter_config["provider"]
        if bot.max_tokens:
            body["max_tokens"] = bot.max_tokens
        if bot.reasoning_effort:
            body["reasoning_effort"] = bot.reasoning_effort
        if "deepseek-r1" in bot.model:
            body["include_reasoning"] = True
        return body

    @property
    def endpoint(self) -> str:
        path = self._bot.custom_api_path or DEFAULT_API_PATH
        return f"{self._bot.base_url.rstrip('/')}{path}"

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._bot.api_key}",
            "HTTP-Referer": self._config.referer,
            "X-Title": self._config.title,
            "Accept": "text/event-stream",
        }

    async def stream_chat(
        self, messages: Sequence[Message], system_prompt: Optional[str] = None
    ) -> AsyncIterator[StreamChunk]:
        body = self.build_request_body(messages, system_prompt)
        deadline = asyncio.get_running_loop().time() + self._config.request_timeout

        client = self._client or httpx.AsyncClient(timeout=None)
        owns_client = self._client is None
        response: httpx.Response | None = None

        logger.debug("provider_request", model=self._bot.model, message_count=len(messages))
        try:
            request = client.build_request("POST", self.endpoint, headers=self._headers(), json=body)
            async with asyncio.timeout_at(deadline):
                response = await client.send(request, stream=True)

            if not response.is_success:
                async with asyncio.timeout_at(deadline):
                    detail = await _error_detail(response)
                logger.warning("provider_http_error", status=response.status_code, detail=detail)
                raise ProviderError.from_status(response.status_code, detail)

            reader = SSEEventReader()
            chunks = response.aiter_bytes()
            finished = False
            while not finished:
                try:
                    async with asyncio.timeout_at(deadline):
                        raw = await anext(chunks)
                    events = reader.feed(raw)
                except StopAsyncIteration:
                    events = reader.flush()
                    finished = True

                for event in events:
                    data = event_data(event)
                    if data is None:
                        continue
                    if data == "[DONE]":
                        logger.debug("provider_stream_done", model=self._bot.model)
                        return
                    chunk = _parse_chunk(data)
                    if chunk is not None:
                        yield chunk
        except ProviderError:
            raise
        except (TimeoutError, httpx.TimeoutException) as e:
            logger.warning("provider_timeout", timeout=self._config.request_timeout)
            raise ProviderError(
                ErrorType.TIMEOUT,
                408,
                f"Request timed out after {self._config.request_timeout:g} seconds",
            ) from e
        except httpx.HTTPError as e:
            logger.error("provider_transport_error", error=str(e))
            raise ProviderError(ErrorType.UNKNOWN, 500, str(e) or type(e).__name__) from e
        finally:
            if response is not None:
                await response.aclose()
            if owns_client:
                await client.aclose()


async def _error_detail(response: httpx.Response) -> str:
    raw = await response.aread()
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return raw.decode("utf-8", errors="replace").strip()[:300]
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return ""


def _parse_chunk(data: str) -> StreamChunk | None:
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        logger.warning("provider_event_invalid_json", error=str(e), data=data[:200])
        return None
    if not isinstance(payload, dict):
        return None

    choices = payload.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta") or {}
    content = delta.get("content")
    reasoning = delta.get("reasoning_content") or delta.get("reasoning")
    if not content and not reasoning:
        return None

    return StreamChunk(
        content=content or "",
        reasoning_content=reasoning or None,
        provider=payload.get("provider"),
        model=payload.get("model"),
    )
