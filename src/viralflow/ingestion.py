from __future__ import annotations

import asyncio
import base64
import mimetypes
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable
from uuid import uuid4

from loguru import logger

from viralflow.errors import AssetEncodeFailedError, AssetTooLargeError
from viralflow.models import AssetStatus, FileAsset

MAX_ASSET_BYTES = 20 * 1024 * 1024

DEFAULT_CHUNK_SIZE = 3 * 128 * 1024

_GENERIC_MIME_TYPES = {"", "application/octet-stream", "binary/octet-stream"}

# Document extensions are always re-typed: browsers and OS pickers report them
# as empty, octet-stream, zip or text/x-* depending on platform.
_DOCUMENT_MIME_TYPES = {
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".csv": "text/csv",
    ".srt": "text/plain",
    ".json": "application/json",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
}

_MEDIA_MIME_TYPES = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".webm": "video/webm",
    ".mkv": "video/x-matroska",
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".heic": "image/heic",
    ".webp": "image/webp",
}

ProgressCallback = Callable[[FileAsset], None]


def normalize_mime_type(filename: str, declared: str | None) -> str:
    ext = Path(filename).suffix.lower()
    declared_type = (declared or "").split(";", 1)[0].strip().lower()

    if ext in _DOCUMENT_MIME_TYPES:
        return _DOCUMENT_MIME_TYPES[ext]
    if declared_type not in _GENERIC_MIME_TYPES:
        return declared_type
    if ext in _MEDIA_MIME_TYPES:
        return _MEDIA_MIME_TYPES[ext]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


@runtime_checkable
class FileSource(Protocol):
    @property
    def name(self) -> str: ...

    @property
    def declared_mime_type(self) -> str: ...

    @property
    def declared_size(self) -> int: ...

    def read_chunks(self, chunk_size: int) -> AsyncIterator[bytes]: ...


class LocalFileSource:
    def __init__(self, path: str | Path, *, mime_type: str | None = None):
        self._path = Path(path)
        self._size = self._path.stat().st_size
        self._mime_type = mime_type if mime_type is not None else (mimetypes.guess_type(self._path.name)[0] or "")

    @property
    def name(self) -> str:
        return self._path.name

    @property
    def declared_mime_type(self) -> str:
        return self._mime_type

    @property
    def declared_size(self) -> int:
        return self._size

    async def read_chunks(self, chunk_size: int) -> AsyncIterator[bytes]:
        handle = await asyncio.to_thread(open, self._path, "rb")
        try:
            while True:
                chunk = await asyncio.to_thread(handle.read, chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            handle.close()


class BytesFileSource:
    def __init__(self, name: str, data: bytes, mime_type: str = ""):
        self._name = name
        self._data = data
        self._mime_type = mime_type

    @property
    def name(self) -> str:
        return self._name

    @property
    def declared_mime_type(self) -> str:
        return self._mime_type

    @property
    def declared_size(self) -> int:
        return len(self._data)

    async def read_chunks(self, chunk_size: int) -> AsyncIterator[bytes]:
        for offset in range(0, len(self._data), chunk_size):
            yield self._data[offset:offset + chunk_size]
            await asyncio.sleep(0)


@dataclass
class IngestionBatch:
    ready: list[FileAsset] = field(default_factory=list)
    failed: list[FileAsset] = field(default_factory=list)
    rejected: list[AssetTooLargeError] = field(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        lines = [str(err) for err in self.rejected]
        lines.extend(f"{a.display_name}: {a.error}" for a in self.failed)
        return lines


class IngestionPipeline:
    def __init__(
        self,
        *,
        max_bytes: int = MAX_ASSET_BYTES,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._max_bytes = max_bytes
        self._chunk_size = chunk_size

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def ingest(self, source: FileSource) -> FileAsset:
        """Validate a file and return it as a PENDING asset.

        Oversized files raise ``AssetTooLargeError`` here, before any reading.
        """
        size = int(source.declared_size)
        if size > self._max_bytes:
            logger.warning(f"Rejected {source.name}: {size:,} bytes exceeds {self._max_bytes:,}")
            raise AssetTooLargeError(source.name, size, self._max_bytes)

        return FileAsset(
            id=uuid4().hex,
            source=source,
            display_name=source.name,
            byte_size=size,
            mime_type=normalize_mime_type(source.name, source.declared_mime_type),
        )

    async def encode(self, asset: FileAsset, on_progress: ProgressCallback | None = None) -> FileAsset:
        if asset.status is not AssetStatus.PENDING:
            raise ValueError(f"Asset {asset.display_name} is {asset.status.value}, expected pending")

        asset.status = AssetStatus.ENCODING
        asset.progress_percent = 0
        if on_progress is not None:
            on_progress(asset)

        encoded: list[str] = []
        # Sources may yield any chunk size; only whole 3-byte groups are encoded before the end.
        carry = b""
        total = 0
        try:
            async for chunk in asset.source.read_chunks(self._chunk_size):
                total += len(chunk)
                if total > self._max_bytes:
                    raise AssetEncodeFailedError(
                        f"{asset.display_name} grew past {self._max_bytes:,} bytes while reading",
                        asset_name=asset.display_name,
                    )
                data = carry + chunk
                cut = len(data) - len(data) % 3
                encoded.append(base64.b64encode(data[:cut]).decode("ascii"))
                carry = data[cut:]
                self._report(asset, total, on_progress)
            encoded.append(base64.b64encode(carry).decode("ascii"))
            if total == 0:
                raise AssetEncodeFailedError(f"{asset.display_name} is empty", asset_name=asset.display_name)
        except Exception as ex:
            asset.status = AssetStatus.FAILED
            asset.error = str(ex)
            logger.warning(f"Encoding failed for {asset.display_name}: {ex}")
            if on_progress is not None:
                on_progress(asset)
            if isinstance(ex, AssetEncodeFailedError):
                raise
            raise AssetEncodeFailedError(str(ex), asset_name=asset.display_name) from ex

        asset.encoded_payload = "".join(encoded)
        asset.byte_size = total
        asset.progress_percent = 100
        asset.status = AssetStatus.READY
        logger.debug(f"Encoded {asset.display_name} ({total:,} bytes, {asset.mime_type})")
        if on_progress is not None:
            on_progress(asset)
        return asset

    async def add_files(
        self,
        sources: Iterable[FileSource],
        on_progress: ProgressCallback | None = None,
    ) -> IngestionBatch:
        """Ingest and encode files concurrently; one failure never affects the others."""
        batch = IngestionBatch()
        pending: list[FileAsset] = []
        for source in sources:
            try:
                pending.append(self.ingest(source))
            except AssetTooLargeError as ex:
                batch.rejected.append(ex)

        results = await asyncio.gather(
            *(self.encode(asset, on_progress) for asset in pending),
            return_exceptions=True,
        )
        for asset, result in zip(pending, results):
            if isinstance(result, AssetEncodeFailedError):
                batch.failed.append(asset)
            elif isinstance(result, BaseException):
                raise result
            else:
                batch.ready.append(asset)
        return batch

    def _report(self, asset: FileAsset, bytes_read: int, on_progress: ProgressCallback | None) -> None:
        if asset.byte_size <= 0:
            return
        percent = min(99, bytes_read * 100 // asset.byte_size)
        if percent <= asset.progress_percent:
            return
        asset.progress_percent = percent
        if on_progress is not None:
            on_progress(asset)
