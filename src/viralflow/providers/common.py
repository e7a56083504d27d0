from __future__ import annotations

import base64
import binascii
from collections.abc import Sequence
from dataclasses import dataclass, field
from uuid import uuid4

from loguru import logger
from tenacity import retry_if_exception_type, stop_after_attempt, wait_exponential

from viralflow.models import Citation, HistoryEntry, MediaPart, Role

_MAX_ATTEMPTS = 5


def _on_retry(retry_state):
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = type(exc).__name__ if exc else "Unknown"
    logger.warning(f"{reason}. Retrying in {wait:.0f}s (attempt {attempt}/{_MAX_ATTEMPTS})...")


def default_retry_kwargs(exception_types: tuple[type[Exception], ...]) -> dict:
    return {
        "retry": retry_if_exception_type(exception_types),
        "wait": wait_exponential(multiplier=2, min=2, max=60),
        "stop": stop_after_attempt(_MAX_ATTEMPTS),
        "before_sleep": _on_retry,
        "reraise": True,
    }


@dataclass
class ChatHandle:
    """Provider-side conversation for chat APIs that are stateless over the wire.

    The provider appends each completed exchange; nothing outside the provider
    reads ``history``.
    """

    persona: str
    tools: frozenset[str]
    history: list[dict] = field(default_factory=list)
    id: str = field(default_factory=lambda: uuid4().hex)


def validate_seed_history(seed_history: Sequence[HistoryEntry]) -> None:
    expected = Role.USER
    for index, entry in enumerate(seed_history):
        if entry.role is not expected:
            raise ValueError(
                f"Seed history entry {index} has role {entry.role.value}; "
                f"entries must alternate starting with user"
            )
        if not entry.text.strip():
            raise ValueError(f"Seed history entry {index} is empty")
        expected = Role.MODEL if expected is Role.USER else Role.USER


def decode_text_payload(part: MediaPart) -> str | None:
    try:
        return base64.b64decode(part.encoded_payload).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None


def unsupported_media_note(part: MediaPart, provider_name: str) -> str:
    logger.warning(f"{provider_name} cannot read {part.mime_type} attachments; sending a placeholder")
    return f"[Attached {part.mime_type} file omitted: this model cannot read that format]"


def dedupe_citations(citations: Sequence[Citation]) -> tuple[Citation, ...]:
    seen: set[str] = set()
    out: list[Citation] = []
    for citation in citations:
        if not citation.url or citation.url in seen:
            continue
        seen.add(citation.url)
        out.append(citation)
    return tuple(out)
