from __future__ import annotations

import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, replace
from uuid import uuid4

from loguru import logger

from viralflow.models import Message, Role

MessageObserver = Callable[[Message], None]


class MessageBuffer:
    """Single writer for one streaming model message.

    Each mutation publishes a fresh immutable ``Message`` snapshot to the
    observer; readers never see the buffer itself.
    """

    def __init__(
        self,
        *,
        message_id: str | None = None,
        timestamp: float | None = None,
        observer: MessageObserver | None = None,
    ):
        self._parts: list[str] = []
        self._observer = observer
        self._snapshot = Message(
            id=message_id or uuid4().hex,
            role=Role.MODEL,
            content="",
            timestamp=time.time() if timestamp is None else timestamp,
            is_streaming=True,
        )

    @property
    def snapshot(self) -> Message:
        return self._snapshot

    @property
    def is_sealed(self) -> bool:
        return not self._snapshot.is_streaming

    def append(self, fragment: str) -> Message:
        if self.is_sealed:
            raise RuntimeError(f"Message {self._snapshot.id} is sealed; cannot append")
        if not fragment:
            return self._snapshot
        self._parts.append(fragment)
        return self._publish(replace(self._snapshot, content="".join(self._parts)))

    def seal(self) -> Message:
        if self.is_sealed:
            raise RuntimeError(f"Message {self._snapshot.id} is already sealed")
        return self._publish(replace(self._snapshot, is_streaming=False))

    def fail(self, error: BaseException | str) -> Message:
        if self.is_sealed:
            raise RuntimeError(f"Message {self._snapshot.id} is already sealed")
        return self._publish(replace(self._snapshot, is_streaming=False, error=str(error)))

    def _publish(self, snapshot: Message) -> Message:
        self._snapshot = snapshot
        if self._observer is not None:
            self._observer(snapshot)
        return snapshot


@dataclass(frozen=True)
class AssemblyResult:
    message: Message
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def assemble_stream(stream: AsyncIterator[str], buffer: MessageBuffer) -> AssemblyResult:
    """Drain ``stream`` into ``buffer`` and finalize it.

    A failure mid-stream keeps the text received so far, records the error on
    the message and reports it once through the result instead of raising.
    """
    fragments = 0
    try:
        async for fragment in stream:
            fragments += 1
            buffer.append(fragment)
    except Exception as ex:
        logger.warning(f"Stream ended with {type(ex).__name__} after {fragments} fragment(s): {ex}")
        return AssemblyResult(message=buffer.fail(ex), error=ex)

    message = buffer.seal()
    logger.debug(f"Stream complete: {fragments} fragment(s), {len(message.content)} chars")
    return AssemblyResult(message=message)
