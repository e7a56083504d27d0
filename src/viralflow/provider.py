from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from viralflow.models import Completion, GeneratedMedia, HistoryEntry, Turn

TOOL_WEB_SEARCH = "web_search"


@dataclass
class ProviderSettings:
    model: str
    max_tokens: int = 8192
    temperature: float = 1.0
    image_model: str = ""
    video_model: str = ""
    video_poll_seconds: float = 5.0
    media_output_dir: str = ".viralflow/media"


@runtime_checkable
class SessionProvider(Protocol):
    @property
    def supports_search_grounding(self) -> bool: ...

    def supports_media(self, mime_type: str) -> bool:
        """Whether attachments of this type reach the model as content.

        Unreadable types are still sent, as a text note naming the file type.
        """
        ...

    async def open_session(
        self,
        persona: str,
        seed_history: Sequence[HistoryEntry],
        tools: frozenset[str],
    ) -> Any:
        """Open a provider-side conversation and return its opaque handle.

        The handle is owned by the provider; callers never inspect, copy or
        serialize it.
        """
        ...

    def send(self, handle: Any, turn: Turn) -> AsyncIterator[str]:
        """Send one turn through an open handle and stream back text fragments.

        The provider keeps the conversation for the handle; callers pass only
        the new turn.
        """
        ...

    async def complete(
        self,
        system_prompt: str,
        turn: Turn,
        *,
        search_grounding: bool = False,
        expect_json: bool = False,
    ) -> Completion:
        """One-shot, non-conversational call. Citations are empty when grounding is unavailable."""
        ...

    async def generate_image(self, prompt: str) -> GeneratedMedia: ...

    async def generate_video(self, prompt: str) -> GeneratedMedia: ...


def create_provider(provider_name: str, api_key: str, settings: ProviderSettings) -> SessionProvider:
    """Factory: create a SessionProvider by name."""
    name = provider_name.strip().lower()
    if name == "anthropic":
        from viralflow.providers.anthropic_provider import AnthropicProvider
        return AnthropicProvider(api_key, settings)
    if name == "openai":
        from viralflow.providers.openai_provider import OpenAIProvider
        return OpenAIProvider(api_key, settings)
    raise ValueError(f"Unknown provider: {provider_name!r}. Supported: 'anthropic', 'openai'")
