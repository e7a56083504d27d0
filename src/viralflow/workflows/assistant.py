from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from viralflow import context_builder, prompts
from viralflow.models import FileAsset, HistoryEntry, Message, Role
from viralflow.streaming import AssemblyResult
from viralflow.workflows.base import Workflow

CHAT = "chat"


def seed_from_transcript(messages: Sequence[Message]) -> list[HistoryEntry]:
    """Rebuild an alternating user/model history from saved chat messages.

    Media, failed and empty messages are skipped, consecutive messages from one
    side are merged, and the history never starts or ends on a dangling turn.
    """
    entries: list[HistoryEntry] = []
    for message in messages:
        if message.is_media or message.error or not message.content.strip():
            continue
        if not entries and message.role is Role.MODEL:
            continue
        if entries and entries[-1].role is message.role:
            entries[-1] = HistoryEntry(message.role, f"{entries[-1].text}\n\n{message.content}")
        else:
            entries.append(HistoryEntry(message.role, message.content))
    if entries and entries[-1].role is Role.USER:
        entries.pop()
    return entries


class Assistant(Workflow):
    """Free-form studio assistant.

    The session opens on the first message, seeded with the saved chat, so a
    restored assistant never depends on a live handle.
    """

    feature = "assistant"
    phases = (CHAT,)

    def __init__(self, provider, **kwargs):
        super().__init__(provider, **kwargs)
        self._greet()

    def _greet(self) -> None:
        if not len(self.transcript(CHAT)):
            self.transcript(CHAT).add_model(prompts.ASSISTANT_GREETING)

    def _on_reset(self) -> None:
        self._greet()

    def _on_restored(self) -> None:
        self._greet()

    async def chat(self, text: str, attachments: Sequence[FileAsset] = ()) -> AssemblyResult:
        if CHAT not in self._sessions:
            seed = seed_from_transcript(self.transcript(CHAT).messages)
            logger.debug(f"Opening assistant session with {len(seed)} seed message(s)")
            await self._open_session(CHAT, prompts.ASSISTANT_PERSONA, seed, self._tools())
        turn = context_builder.follow_up(text, list(attachments))
        return await self._exchange(CHAT, CHAT, turn, text, attachments)

    def clear(self) -> None:
        self.reset()
