from __future__ import annotations

from collections.abc import AsyncIterator, Sequence

import anthropic
from loguru import logger
from tenacity import retry

from viralflow.errors import MediaGenerationUnsupportedError
from viralflow.models import Citation, Completion, GeneratedMedia, HistoryEntry, MediaPart, Role, TextPart, Turn
from viralflow.provider import TOOL_WEB_SEARCH, ProviderSettings
from viralflow.providers.common import (
    ChatHandle,
    decode_text_payload,
    dedupe_citations,
    default_retry_kwargs,
    unsupported_media_note,
    validate_seed_history,
)

_IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}

_WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 5}

_RETRYABLE = (
    anthropic.RateLimitError,
    anthropic.APIConnectionError,
    anthropic.APITimeoutError,
)


def _to_content_block(part: TextPart | MediaPart) -> dict:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.value}

    source = {"type": "base64", "media_type": part.mime_type, "data": part.encoded_payload}
    if part.mime_type in _IMAGE_TYPES:
        return {"type": "image", "source": source}
    if part.mime_type == "application/pdf":
        return {"type": "document", "source": source}
    if part.mime_type.startswith("text/") or part.mime_type == "application/json":
        text = decode_text_payload(part)
        if text is not None:
            return {"type": "document", "source": {"type": "text", "media_type": "text/plain", "data": text}}
    return {"type": "text", "text": unsupported_media_note(part, "Anthropic")}


def _to_anthropic_content(turn: Turn) -> list[dict]:
    return [_to_content_block(part) for part in turn.parts]


def _to_anthropic_history(seed_history: Sequence[HistoryEntry]) -> list[dict]:
    return [
        {"role": "user" if entry.role is Role.USER else "assistant", "content": entry.text}
        for entry in seed_history
    ]


def _extract_citations(content: Sequence[object]) -> list[Citation]:
    citations: list[Citation] = []
    for block in content:
        block_type = getattr(block, "type", "")
        if block_type == "text":
            for cite in getattr(block, "citations", None) or []:
                url = getattr(cite, "url", None)
                if url:
                    citations.append(Citation(title=getattr(cite, "title", None) or url, url=url))
        elif block_type == "web_search_tool_result":
            results = getattr(block, "content", None)
            if isinstance(results, list):
                for result in results:
                    url = getattr(result, "url", None)
                    if url:
                        citations.append(Citation(title=getattr(result, "title", None) or url, url=url))
    return citations


class AnthropicProvider:
    def __init__(self, api_key: str, settings: ProviderSettings):
        self._client = anthropic.AsyncAnthropic(api_key=api_key)
        self._settings = settings

    @property
    def supports_search_grounding(self) -> bool:
        return True

    def supports_media(self, mime_type: str) -> bool:
        return (
            mime_type in _IMAGE_TYPES
            or mime_type in ("application/pdf", "application/json")
            or mime_type.startswith("text/")
        )

    async def open_session(
        self,
        persona: str,
        seed_history: Sequence[HistoryEntry],
        tools: frozenset[str],
    ) -> ChatHandle:
        validate_seed_history(seed_history)
        handle = ChatHandle(persona=persona, tools=frozenset(tools), history=_to_anthropic_history(seed_history))
        logger.debug(f"Opened Anthropic session {handle.id} (seed={len(seed_history)}, tools={sorted(tools)})")
        return handle

    async def send(self, handle: ChatHandle, turn: Turn) -> AsyncIterator[str]:
        user_message = {"role": "user", "content": _to_anthropic_content(turn)}
        messages = [*handle.history, user_message]
        tools = [_WEB_SEARCH_TOOL] if TOOL_WEB_SEARCH in handle.tools else []

        logger.debug(
            f"API request: session={handle.id}, model={self._settings.model}, "
            f"messages={len(messages)}, parts={len(turn)}"
        )
        stream = await self._open_stream(handle.persona, messages, tools)

        fragments: list[str] = []
        async for event in stream:
            if event.type == "content_block_delta" and event.delta.type == "text_delta":
                fragments.append(event.delta.text)
                yield event.delta.text

        reply = "".join(fragments)
        if not reply:
            # An empty assistant turn is rejected by the API on the next send.
            logger.warning(f"API response: session={handle.id} returned no text; exchange not kept in history")
            return
        handle.history.append(user_message)
        handle.history.append({"role": "assistant", "content": reply})
        logger.debug(f"API response: session={handle.id}, fragments={len(fragments)}")

    @retry(**default_retry_kwargs(_RETRYABLE))
    async def _open_stream(self, system_prompt: str, messages: list[dict], tools: list[dict]):
        kwargs: dict = dict(
            model=self._settings.model,
            max_tokens=self._settings.max_tokens,
            temperature=self._settings.temperature,
            system=system_prompt,
            messages=messages,
            stream=True,
        )
        if tools:
            kwargs["tools"] = tools
        return await self._client.messages.create(**kwargs)

    @retry(**default_retry_kwargs(_RETRYABLE))
    async def complete(
        self,
        system_prompt: str,
        turn: Turn,
        *,
        search_grounding: bool = False,
        expect_json: bool = False,
    ) -> Completion:
        kwargs: dict = dict(
            model=self._settings.model,
            max_tokens=self._settings.max_tokens,
            temperature=self._settings.temperature,
            system=system_prompt,
            messages=[{"role": "user", "content": _to_anthropic_content(turn)}],
        )
        if search_grounding:
            kwargs["tools"] = [_WEB_SEARCH_TOOL]

        logger.debug(
            f"One-shot API request: model={self._settings.model}, parts={len(turn)}, "
            f"grounding={search_grounding}, json={expect_json}"
        )
        response = await self._client.messages.create(**kwargs)

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        citations = dedupe_citations(_extract_citations(response.content))
        usage = response.usage
        logger.debug(
            f"One-shot API response: stop_reason={response.stop_reason}, "
            f"input_tokens={usage.input_tokens}, output_tokens={usage.output_tokens}, "
            f"citations={len(citations)}"
        )
        return Completion(text=text, citations=citations)

    async def generate_image(self, prompt: str) -> GeneratedMedia:
        raise MediaGenerationUnsupportedError("Anthropic models cannot generate images")

    async def generate_video(self, prompt: str) -> GeneratedMedia:
        raise MediaGenerationUnsupportedError("Anthropic models cannot generate videos")
