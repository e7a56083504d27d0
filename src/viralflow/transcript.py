from __future__ import annotations

import json
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import asdict, replace
from uuid import uuid4

from loguru import logger

from viralflow import prompts
from viralflow.models import GeneratedMedia, Message, Role
from viralflow.streaming import MessageBuffer


class Transcript:
    """Ordered messages of one workflow phase.

    Timestamps never go backwards, even when the clock does. Streaming
    placeholders are replaced in place by the snapshots their buffer publishes.
    """

    def __init__(
        self,
        messages: Iterable[Message] = (),
        *,
        clock: Callable[[], float] = time.time,
        on_change: Callable[[], None] | None = None,
    ):
        self._messages: list[Message] = list(messages)
        self._clock = clock
        self._on_change = on_change

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def set_listener(self, on_change: Callable[[], None] | None) -> None:
        self._on_change = on_change

    def add_user(self, content: str, attached_media: Sequence[str] = ()) -> Message:
        return self._append(
            Message(
                id=uuid4().hex,
                role=Role.USER,
                content=content,
                timestamp=self._next_timestamp(),
                attached_media=tuple(attached_media),
            )
        )

    def add_model(self, content: str) -> Message:
        return self._append(
            Message(id=uuid4().hex, role=Role.MODEL, content=content, timestamp=self._next_timestamp())
        )

    def begin_model(self) -> MessageBuffer:
        buffer = MessageBuffer(timestamp=self._next_timestamp(), observer=self._replace)
        self._append(buffer.snapshot)
        return buffer

    def begin_media(self, kind: str, prompt: str) -> Message:
        return self._append(
            Message(
                id=uuid4().hex,
                role=Role.MODEL,
                content=prompts.media_placeholder(kind, prompt),
                timestamp=self._next_timestamp(),
                is_streaming=True,
            )
        )

    def complete_media(self, message_id: str, media: GeneratedMedia) -> Message:
        message = replace(self._get(message_id), is_streaming=False, generated_media=media)
        self._replace(message)
        return message

    def fail_media(self, message_id: str, error: BaseException | str) -> Message:
        message = replace(
            self._get(message_id),
            content=f"Media generation failed: {error}",
            is_streaming=False,
            error=str(error),
        )
        self._replace(message)
        return message

    def user_messages(self) -> list[Message]:
        return [m for m in self._messages if m.role is Role.USER]

    def clear(self) -> None:
        if self._messages:
            self._messages.clear()
            self._notify()

    def to_records(self) -> list[str]:
        return [json.dumps(_message_to_dict(m), ensure_ascii=False) for m in self._messages]

    @classmethod
    def from_records(
        cls,
        records: Iterable[str],
        *,
        clock: Callable[[], float] = time.time,
    ) -> Transcript:
        messages: list[Message] = []
        last = float("-inf")
        for raw in records:
            message = _message_from_dict(json.loads(raw))
            if message.timestamp < last:
                message = replace(message, timestamp=last)
            last = message.timestamp
            messages.append(message)
        return cls(messages, clock=clock)

    def _next_timestamp(self) -> float:
        now = self._clock()
        if self._messages and now < self._messages[-1].timestamp:
            return self._messages[-1].timestamp
        return now

    def _append(self, message: Message) -> Message:
        self._messages.append(message)
        self._notify()
        return message

    def _get(self, message_id: str) -> Message:
        for message in self._messages:
            if message.id == message_id:
                return message
        raise KeyError(message_id)

    def _replace(self, message: Message) -> None:
        for index, existing in enumerate(self._messages):
            if existing.id == message.id:
                self._messages[index] = message
                if not message.is_streaming:
                    self._notify()
                return
        # The transcript was cleared while the message was still streaming.
        logger.debug(f"Dropping update for message {message.id} no longer in transcript")

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()


def _message_to_dict(message: Message) -> dict:
    return {
        "id": message.id,
        "role": message.role.value,
        "content": message.content,
        "timestamp": message.timestamp,
        "attached_media": list(message.attached_media),
        "generated_media": asdict(message.generated_media) if message.generated_media else None,
        "error": message.error,
    }


def _message_from_dict(data: dict) -> Message:
    if not isinstance(data, dict):
        raise TypeError(f"Message record is {type(data).__name__}, not an object")
    media = data.get("generated_media")
    return Message(
        id=str(data["id"]),
        role=Role(data["role"]),
        content=str(data.get("content", "")),
        timestamp=float(data["timestamp"]),
        # Nothing streams across a restart.
        is_streaming=False,
        attached_media=tuple(data.get("attached_media") or ()),
        generated_media=GeneratedMedia(**media) if media else None,
        error=data.get("error"),
    )
