"""Application-level exception types for ViralFlow."""

from __future__ import annotations

from collections.abc import Sequence


class ViralFlowError(Exception):
    """Base exception for ViralFlow."""

    kind = "ViralFlowError"


class ConfigurationError(ViralFlowError):
    """Base exception for configuration and startup validation errors."""

    kind = "Configuration"


class ApiKeyNotConfiguredError(ConfigurationError):
    """Raised when the selected provider has no API key."""

    kind = "ApiKeyNotConfigured"


class AssetError(ViralFlowError):
    """Base exception for per-file ingestion problems."""

    def __init__(self, message: str, *, asset_name: str = "") -> None:
        super().__init__(message)
        self.asset_name = asset_name


class AssetTooLargeError(AssetError):
    """Raised by ``ingest`` before any encoding when a file exceeds the ceiling."""

    kind = "AssetTooLarge"

    def __init__(self, asset_name: str, byte_size: int, limit: int) -> None:
        super().__init__(
            f"{asset_name} is {byte_size:,} bytes; the limit is {limit:,} bytes",
            asset_name=asset_name,
        )
        self.byte_size = byte_size
        self.limit = limit


class AssetEncodeFailedError(AssetError):
    """Raised when reading or encoding a file fails."""

    kind = "AssetEncodeFailed"


class AssetNotReadyError(AssetError):
    """Raised when a turn references assets that are not encoded yet."""

    kind = "AssetNotReady"

    def __init__(self, asset_names: Sequence[str]) -> None:
        names = ", ".join(asset_names)
        super().__init__(f"Assets are not ready: {names}", asset_name=names)
        self.asset_names = list(asset_names)


class SessionOpenFailedError(ViralFlowError):
    """Raised when the provider refuses or cannot open a session."""

    kind = "SessionOpenFailed"


class SessionClosedError(ViralFlowError):
    """Raised when sending through a session whose handle was dropped."""

    kind = "SessionClosed"


class StreamError(ViralFlowError):
    """Raised when a response stream fails mid-flight."""

    kind = "StreamError"


class CompletionFailedError(ViralFlowError):
    """Raised when a one-shot call fails or returns no text."""

    kind = "CompletionFailed"


class MalformedStructuredResponseError(ViralFlowError):
    """Raised when a structured one-shot response cannot be parsed."""

    kind = "MalformedStructuredResponse"


class InvalidActionError(ViralFlowError):
    """Raised when a workflow action is not valid in the current phase."""

    kind = "InvalidAction"


class MediaGenerationError(ViralFlowError):
    """Raised when an image or video generation request fails."""

    kind = "MediaGeneration"


class MediaGenerationUnsupportedError(MediaGenerationError):
    """Raised by providers that cannot generate media."""

    kind = "MediaGenerationUnsupported"
