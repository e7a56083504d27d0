from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable, Sequence
from typing import Any

from loguru import logger

from viralflow.errors import SessionClosedError, SessionOpenFailedError, StreamError
from viralflow.models import HistoryEntry, Turn
from viralflow.provider import SessionProvider


class ConversationalSession:
    """One stateful conversation against a provider.

    The persona is fixed for the session's lifetime. Sends are strictly
    serialized: a second ``send`` waits until the previous stream completes or
    fails. A failed stream never closes the session.
    """

    def __init__(self, provider: SessionProvider, handle: Any, persona: str, tools: frozenset[str]):
        self._provider = provider
        self._handle: Any | None = handle
        self._persona = persona
        self._tools = tools
        self._lock = asyncio.Lock()
        self._turns_sent = 0

    @classmethod
    async def open(
        cls,
        provider: SessionProvider,
        persona: str,
        seed_history: Sequence[HistoryEntry] = (),
        tools: Iterable[str] = (),
    ) -> ConversationalSession:
        tool_set = frozenset(tools)
        try:
            handle = await provider.open_session(persona, list(seed_history), tool_set)
        except Exception as ex:
            logger.warning(f"Session open failed: {type(ex).__name__}: {ex}")
            raise SessionOpenFailedError(str(ex) or type(ex).__name__) from ex
        logger.info(f"Session opened (seed={len(seed_history)}, tools={sorted(tool_set)})")
        return cls(provider, handle, persona, tool_set)

    @property
    def persona(self) -> str:
        return self._persona

    @property
    def tools(self) -> frozenset[str]:
        return self._tools

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    @property
    def turns_sent(self) -> int:
        return self._turns_sent

    async def send(self, turn: Turn) -> AsyncIterator[str]:
        async with self._lock:
            if self._handle is None:
                raise SessionClosedError("Session is closed")
            self._turns_sent += 1
            try:
                async for fragment in self._provider.send(self._handle, turn):
                    yield fragment
            except StreamError:
                raise
            except Exception as ex:
                logger.warning(f"Stream failed on turn {self._turns_sent}: {type(ex).__name__}: {ex}")
                raise StreamError(str(ex) or type(ex).__name__) from ex

    def close(self) -> None:
        # The provider has no close call; dropping the handle is enough.
        if self._handle is not None:
            logger.debug(f"Session closed after {self._turns_sent} turn(s)")
        self._handle = None
