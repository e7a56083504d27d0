import asyncio
from collections import deque
from dataclasses import dataclass, field
from itertools import count

from viralflow.ingestion import BytesFileSource, IngestionPipeline
from viralflow.models import AssetRole, Completion, FileAsset, GeneratedMedia, HistoryEntry, Turn


@dataclass
class FakeReply:
    fragments: list[str] = field(default_factory=lambda: ["ok"])
    error: Exception | None = None
    gate: asyncio.Event | None = None


@dataclass
class FakeHandle:
    id: int
    persona: str
    seed_history: list[HistoryEntry]
    tools: frozenset[str]
    turns: list[Turn] = field(default_factory=list)


class FakeProvider:
    """Scriptable SessionProvider: queue replies and completions, then inspect the calls."""

    def __init__(self, *, supports_search_grounding: bool = True, unreadable_mime_types=()):
        self._supports_search_grounding = supports_search_grounding
        self._unreadable_mime_types = frozenset(unreadable_mime_types)
        self._ids = count(1)
        self.handles: list[FakeHandle] = []
        self.replies: deque[FakeReply] = deque()
        self.completions: deque[Completion | Exception] = deque()
        self.complete_calls: list[dict] = []
        self.open_errors: deque[Exception] = deque()
        self.media_error: Exception | None = None
        self.media_calls: list[tuple[str, str]] = []

    @property
    def supports_search_grounding(self) -> bool:
        return self._supports_search_grounding

    def supports_media(self, mime_type):
        return mime_type not in self._unreadable_mime_types

    def queue_reply(self, *fragments: str, error: Exception | None = None, gate: asyncio.Event | None = None) -> None:
        self.replies.append(FakeReply(list(fragments), error, gate))

    def queue_completion(self, text: str = "", citations=(), *, error: Exception | None = None) -> None:
        self.completions.append(error if error is not None else Completion(text=text, citations=tuple(citations)))

    async def open_session(self, persona, seed_history, tools):
        if self.open_errors:
            raise self.open_errors.popleft()
        handle = FakeHandle(next(self._ids), persona, list(seed_history), frozenset(tools))
        self.handles.append(handle)
        return handle

    async def send(self, handle, turn):
        handle.turns.append(turn)
        reply = self.replies.popleft() if self.replies else FakeReply()
        if reply.gate is not None:
            await reply.gate.wait()
        for fragment in reply.fragments:
            await asyncio.sleep(0)
            yield fragment
        if reply.error is not None:
            raise reply.error

    async def complete(self, system_prompt, turn, *, search_grounding=False, expect_json=False):
        self.complete_calls.append(
            {
                "system_prompt": system_prompt,
                "turn": turn,
                "search_grounding": search_grounding,
                "expect_json": expect_json,
            }
        )
        result = self.completions.popleft() if self.completions else Completion(text="")
        if isinstance(result, Exception):
            raise result
        return result

    async def generate_image(self, prompt):
        return await self._generate("image", prompt)

    async def generate_video(self, prompt):
        return await self._generate("video", prompt)

    async def _generate(self, kind, prompt):
        self.media_calls.append((kind, prompt))
        if self.media_error is not None:
            raise self.media_error
        mime = "image/png" if kind == "image" else "video/mp4"
        return GeneratedMedia(kind=kind, uri=f"file:///tmp/{kind}.bin", mime_type=mime, prompt=prompt)


class ChunkedSource:
    """File source that yields exactly the given chunks."""

    def __init__(self, name: str, chunks: list[bytes]):
        self._name = name
        self._chunks = chunks

    @property
    def name(self) -> str:
        return self._name

    @property
    def declared_mime_type(self) -> str:
        return "application/octet-stream"

    @property
    def declared_size(self) -> int:
        return sum(len(c) for c in self._chunks)

    async def read_chunks(self, chunk_size: int):
        for chunk in self._chunks:
            yield chunk


class FailingSource:
    """File source whose reader breaks after the first chunk."""

    def __init__(self, name: str = "broken.mp4", size: int = 10):
        self._name = name
        self._size = size

    @property
    def name(self) -> str:
        return self._name

    @property
    def declared_mime_type(self) -> str:
        return "video/mp4"

    @property
    def declared_size(self) -> int:
        return self._size

    async def read_chunks(self, chunk_size: int):
        yield b"abc"
        raise OSError("device unplugged")


def ready_asset(name: str = "clip.mp4", data: bytes = b"video-bytes", mime_type: str = "video/mp4") -> FileAsset:
    pipeline = IngestionPipeline()
    asset = pipeline.ingest(BytesFileSource(name, data, mime_type))
    return asyncio.run(pipeline.encode(asset))


async def attach_bytes(workflow, role: AssetRole, name: str, data: bytes = b"payload", mime_type: str = ""):
    return await workflow.attach(role, [BytesFileSource(name, data, mime_type)])
