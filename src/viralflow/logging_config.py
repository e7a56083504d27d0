from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger

from viralflow.errors import ConfigurationError

# Every record carries the studio it came from; "-" before a studio is opened.
_NO_STUDIO = "-"

_CONSOLE_FORMAT = (
    "<level>{level:<8}</level> | <magenta>{extra[studio]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
_FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {extra[studio]:<9} | "
    "{name}:{function}:{line} - {message}"
)


@runtime_checkable
class LogConsumer(Protocol):
    def register(self, level: str) -> int: ...
    def describe(self, level: str) -> str: ...


class ConsoleLogConsumer:
    def __init__(self, stream: str = "stderr"):
        if stream not in ("stderr", "stdout"):
            raise ValueError(f"stream must be 'stderr' or 'stdout', not {stream!r}")
        self._stream = stream

    def register(self, level: str) -> int:
        sink = sys.stderr if self._stream == "stderr" else sys.stdout
        return logger.add(sink, level=level, format=_CONSOLE_FORMAT)

    def describe(self, level: str) -> str:
        return f"console ({self._stream}, {level})"


class FileLogConsumer:
    def __init__(
        self,
        path: str = ".viralflow/viralflow.log",
        rotation: str = "10 MB",
        retention: int = 3,
        compression: str | None = None,
        serialize: bool = False,
    ):
        self._path = Path(path)
        self._rotation = rotation
        self._retention = retention
        self._compression = compression
        self._serialize = serialize

    def register(self, level: str) -> int:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        return logger.add(
            str(self._path),
            level=level,
            format=_FILE_FORMAT,
            rotation=self._rotation,
            retention=self._retention,
            compression=self._compression,
            serialize=self._serialize,
        )

    def describe(self, level: str) -> str:
        details = ["json" if self._serialize else "text", f"rotate {self._rotation}"]
        if self._compression:
            details.append(self._compression)
        return f"file ({self._path}, {', '.join(details)}, {level})"


_CONSUMER_TYPES: dict[str, type] = {
    "console": ConsoleLogConsumer,
    "file": FileLogConsumer,
}

# Streamed replies go to stdout, so the console sink only carries warnings.
_DEFAULT_CONSUMERS = [
    {"type": "console", "level": "WARNING"},
    {"type": "file"},
]


def _check_level(name: Any) -> str:
    level = str(name).upper()
    try:
        logger.level(level)
    except ValueError as ex:
        raise ConfigurationError(f"Unknown log level {name!r}") from ex
    return level


def _build_consumer(config: Any) -> tuple[LogConsumer, str | None]:
    if not isinstance(config, dict):
        raise ConfigurationError(f"Log consumer entries must be objects, got {type(config).__name__}")
    sink_type = config.get("type", "")
    cls = _CONSUMER_TYPES.get(sink_type)
    if cls is None:
        raise ConfigurationError(
            f"Unknown log consumer type {sink_type!r}; expected one of {', '.join(_CONSUMER_TYPES)}"
        )
    options = {k: v for k, v in config.items() if k not in ("type", "level")}
    try:
        consumer = cls(**options)
    except (TypeError, ValueError) as ex:
        raise ConfigurationError(f"Invalid {sink_type} log consumer options: {ex}") from ex
    return consumer, config.get("level")


def set_log_studio(studio: str | None) -> None:
    """Tag every following record with the active studio."""
    logger.configure(extra={"studio": studio or _NO_STUDIO})


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
    *,
    studio: str | None = None,
) -> list[str]:
    """Replace all sinks with the configured consumers and return a description of each.

    The whole list is validated before any sink is touched, so a bad entry
    leaves the previous logging setup in place.
    """
    default_level = _check_level(level)
    planned = [_build_consumer(config) for config in (consumers if consumers is not None else _DEFAULT_CONSUMERS)]
    levels = [_check_level(sink_level) if sink_level else default_level for _, sink_level in planned]

    logger.remove()
    set_log_studio(studio)
    descriptions: list[str] = []
    for (consumer, _), sink_level in zip(planned, levels):
        consumer.register(sink_level)
        descriptions.append(consumer.describe(sink_level))
    logger.debug(f"Logging configured: {'; '.join(descriptions) or 'no sinks'}")
    return descriptions
