from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class AssetStatus(str, Enum):
    PENDING = "pending"
    ENCODING = "encoding"
    READY = "ready"
    FAILED = "failed"


class AssetRole(str, Enum):
    HISTORY = "history_version"
    BENCHMARK = "benchmark_style"
    CONTENT = "content_reference"
    CURRENT = "current_version"
    ATTACHMENT = "attachment"


class Role(str, Enum):
    USER = "user"
    MODEL = "model"


class Platform(str, Enum):
    TIKTOK = "TikTok"
    DOUYIN = "Douyin"
    YOUTUBE_SHORTS = "YouTube Shorts"
    INSTAGRAM_REELS = "Instagram Reels"
    RED_NOTE = "RED"


class AuditTone(str, Enum):
    CRITICAL = "critical"
    ENCOURAGING = "encouraging"
    ANALYTICAL = "analytical"
    OBJECTIVE = "objective"


@dataclass
class FileAsset:
    """A user-selected file on its way to becoming a transmittable payload.

    Only the ingestion pipeline mutates an asset. ``encoded_payload`` is set
    exactly when ``status`` is READY.
    """

    id: str
    source: Any
    display_name: str
    byte_size: int
    mime_type: str
    encoded_payload: str | None = None
    status: AssetStatus = AssetStatus.PENDING
    progress_percent: int = 0
    error: str | None = None

    @property
    def is_ready(self) -> bool:
        return self.status is AssetStatus.READY and bool(self.encoded_payload)


@dataclass(frozen=True)
class TextPart:
    value: str
    kind: str = field(default="text", init=False)


@dataclass(frozen=True)
class MediaPart:
    mime_type: str
    encoded_payload: str
    kind: str = field(default="media", init=False)


MessagePart = Union[TextPart, MediaPart]


@dataclass(frozen=True)
class Turn:
    parts: tuple[MessagePart, ...]

    def __len__(self) -> int:
        return len(self.parts)

    def __iter__(self):
        return iter(self.parts)

    @property
    def text(self) -> str:
        return "\n".join(p.value for p in self.parts if isinstance(p, TextPart))

    @property
    def media(self) -> list[MediaPart]:
        return [p for p in self.parts if isinstance(p, MediaPart)]


@dataclass(frozen=True)
class HistoryEntry:
    role: Role
    text: str


@dataclass(frozen=True)
class GeneratedMedia:
    kind: str
    uri: str
    mime_type: str
    prompt: str


@dataclass(frozen=True)
class Message:
    id: str
    role: Role
    content: str
    timestamp: float
    is_streaming: bool = False
    attached_media: tuple[str, ...] = ()
    generated_media: GeneratedMedia | None = None
    error: str | None = None

    @property
    def is_media(self) -> bool:
        return self.generated_media is not None


@dataclass(frozen=True)
class Citation:
    title: str
    url: str


@dataclass(frozen=True)
class Completion:
    text: str
    citations: tuple[Citation, ...] = ()


@dataclass
class TopicResult:
    title: str
    description: str
    relevance_score: float
    trending_reason: str
    sources: list[Citation] = field(default_factory=list)


@dataclass
class AuditResult:
    score: float
    strengths: list[str]
    weaknesses: list[str]
    suggestions: list[str]
    viral_potential: str


@dataclass(frozen=True)
class WorkflowState:
    feature: str
    phase: str
    persisted_fields: dict[str, str | list[str]] = field(default_factory=dict)
