from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from pathlib import Path

import openai
from loguru import logger
from tenacity import retry

from viralflow.errors import MediaGenerationError
from viralflow.models import Completion, GeneratedMedia, HistoryEntry, MediaPart, Role, TextPart, Turn
from viralflow.provider import ProviderSettings
from viralflow.providers.common import (
    ChatHandle,
    decode_text_payload,
    default_retry_kwargs,
    unsupported_media_note,
    validate_seed_history,
)

_IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
_AUDIO_FORMATS = {"audio/wav": "wav", "audio/x-wav": "wav", "audio/mpeg": "mp3", "audio/mp3": "mp3"}

_RETRYABLE = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.APITimeoutError,
)


def _to_content_part(part: TextPart | MediaPart) -> dict:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.value}

    data_url = f"data:{part.mime_type};base64,{part.encoded_payload}"
    if part.mime_type in _IMAGE_TYPES:
        return {"type": "image_url", "image_url": {"url": data_url}}
    if part.mime_type == "application/pdf":
        return {"type": "file", "file": {"filename": "attachment.pdf", "file_data": data_url}}
    if part.mime_type in _AUDIO_FORMATS:
        return {
            "type": "input_audio",
            "input_audio": {"data": part.encoded_payload, "format": _AUDIO_FORMATS[part.mime_type]},
        }
    if part.mime_type.startswith("text/") or part.mime_type == "application/json":
        text = decode_text_payload(part)
        if text is not None:
            return {"type": "text", "text": text}
    return {"type": "text", "text": unsupported_media_note(part, "OpenAI")}


def _to_openai_content(turn: Turn) -> list[dict]:
    return [_to_content_part(part) for part in turn.parts]


def _to_openai_messages(system_prompt: str, history: Sequence[dict], turn: Turn) -> list[dict]:
    out: list[dict] = []
    if system_prompt:
        out.append({"role": "system", "content": system_prompt})
    out.extend(history)
    out.append({"role": "user", "content": _to_openai_content(turn)})
    return out


def _to_openai_history(seed_history: Sequence[HistoryEntry]) -> list[dict]:
    return [
        {"role": "user" if entry.role is Role.USER else "assistant", "content": entry.text}
        for entry in seed_history
    ]


class OpenAIProvider:
    def __init__(self, api_key: str, settings: ProviderSettings):
        self._client = openai.AsyncOpenAI(api_key=api_key)
        self._settings = settings

    @property
    def supports_search_grounding(self) -> bool:
        return False

    def supports_media(self, mime_type: str) -> bool:
        return (
            mime_type in _IMAGE_TYPES
            or mime_type in _AUDIO_FORMATS
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
        handle = ChatHandle(persona=persona, tools=frozenset(tools), history=_to_openai_history(seed_history))
        if tools:
            logger.debug(f"OpenAI chat completions ignore session tools {sorted(tools)}")
        logger.debug(f"Opened OpenAI session {handle.id} (seed={len(seed_history)})")
        return handle

    async def send(self, handle: ChatHandle, turn: Turn) -> AsyncIterator[str]:
        messages = _to_openai_messages(handle.persona, handle.history, turn)
        logger.debug(
            f"API request: session={handle.id}, model={self._settings.model}, "
            f"messages={len(messages)}, parts={len(turn)}"
        )
        stream = await self._open_stream(messages)

        fragments: list[str] = []
        finish_reason: str | None = None
        async for chunk in stream:
            choice = chunk.choices[0] if chunk.choices else None
            if choice is None:
                continue
            if choice.finish_reason:
                finish_reason = choice.finish_reason
            delta = choice.delta
            if delta is not None and delta.content:
                fragments.append(delta.content)
                yield delta.content

        reply = "".join(fragments)
        if not reply:
            logger.warning(
                f"API response: session={handle.id}, finish_reason={finish_reason} returned no text; "
                "exchange not kept in history"
            )
            return
        handle.history.append(messages[-1])
        handle.history.append({"role": "assistant", "content": reply})
        logger.debug(
            f"API response: session={handle.id}, finish_reason={finish_reason}, fragments={len(fragments)}"
        )

    @retry(**default_retry_kwargs(_RETRYABLE))
    async def _open_stream(self, messages: list[dict]):
        return await self._client.chat.completions.create(
            model=self._settings.model,
            max_tokens=self._settings.max_tokens,
            temperature=self._settings.temperature,
            messages=messages,
            stream=True,
        )

    @retry(**default_retry_kwargs(_RETRYABLE))
    async def complete(
        self,
        system_prompt: str,
        turn: Turn,
        *,
        search_grounding: bool = False,
        expect_json: bool = False,
    ) -> Completion:
        if search_grounding:
            logger.debug("Search grounding is not available on chat completions; citations will be empty")
        messages = _to_openai_messages(system_prompt, [], turn)
        logger.debug(f"One-shot API request: model={self._settings.model}, parts={len(turn)}, json={expect_json}")
        response = await self._client.chat.completions.create(
            model=self._settings.model,
            max_tokens=self._settings.max_tokens,
            temperature=self._settings.temperature,
            messages=messages,
        )
        text = response.choices[0].message.content or ""
        logger.debug(f"One-shot API response: len={len(text)}")
        return Completion(text=text)

    @retry(**default_retry_kwargs(_RETRYABLE))
    async def generate_image(self, prompt: str) -> GeneratedMedia:
        model = self._settings.image_model or "gpt-image-1"
        logger.debug(f"Image request: model={model}")
        response = await self._client.images.generate(model=model, prompt=prompt, n=1)
        data = response.data[0] if response.data else None
        if data is None or not data.b64_json:
            raise MediaGenerationError("The image model returned no image")
        return GeneratedMedia(
            kind="image",
            uri=f"data:image/png;base64,{data.b64_json}",
            mime_type="image/png",
            prompt=prompt,
        )

    async def generate_video(self, prompt: str) -> GeneratedMedia:
        model = self._settings.video_model or "sora-2"
        logger.debug(f"Video request: model={model}")
        video = await self._client.videos.create(model=model, prompt=prompt)

        while video.status not in ("completed", "failed"):
            await asyncio.sleep(self._settings.video_poll_seconds)
            video = await self._client.videos.retrieve(video.id)
            logger.debug(f"Video {video.id}: status={video.status}, progress={getattr(video, 'progress', None)}")

        if video.status == "failed":
            error = getattr(video, "error", None)
            raise MediaGenerationError(getattr(error, "message", None) or "Video generation failed")

        content = await self._client.videos.download_content(video.id, variant="video")
        output_dir = Path(self._settings.media_output_dir)
        output_path = output_dir / f"{video.id}.mp4"
        await asyncio.to_thread(output_dir.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(output_path.write_bytes, content.content)
        logger.info(f"Video {video.id} saved to {output_path}")
        return GeneratedMedia(kind="video", uri=output_path.resolve().as_uri(), mime_type="video/mp4", prompt=prompt)
