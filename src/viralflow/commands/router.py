from __future__ import annotations

from collections.abc import Awaitable, Callable


class CommandRouter:
    def __init__(
        self,
        *,
        on_help: Callable[[], Awaitable[None]],
        on_status: Callable[[], Awaitable[None]],
        on_attach: Callable[[str], Awaitable[None]],
        on_next: Callable[[], Awaitable[None]],
        on_back: Callable[[], Awaitable[None]],
        on_reset: Callable[[], Awaitable[None]],
        on_media: Callable[[str, str], Awaitable[None]],
        on_plan: Callable[[], Awaitable[None]],
        on_produce: Callable[[], Awaitable[None]],
        on_quick: Callable[[str], Awaitable[None]],
        on_unknown: Callable[[str], None],
    ) -> None:
        self._on_help = on_help
        self._on_status = on_status
        self._on_attach = on_attach
        self._on_next = on_next
        self._on_back = on_back
        self._on_reset = on_reset
        self._on_media = on_media
        self._on_plan = on_plan
        self._on_produce = on_produce
        self._on_quick = on_quick
        self._on_unknown = on_unknown

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        command, _, argument = trimmed.partition(" ")
        argument = argument.strip()

        if command == "/help":
            await self._on_help()
            return True
        if command == "/status":
            await self._on_status()
            return True
        if command == "/attach":
            await self._on_attach(argument)
            return True
        if command == "/next":
            await self._on_next()
            return True
        if command == "/back":
            await self._on_back()
            return True
        if command == "/reset":
            await self._on_reset()
            return True
        if command in ("/image", "/video"):
            await self._on_media(command[1:], argument)
            return True
        if command == "/plan":
            await self._on_plan()
            return True
        if command == "/produce":
            await self._on_produce()
            return True
        if command == "/quick":
            await self._on_quick(argument)
            return True

        self._on_unknown(trimmed)
        return True
