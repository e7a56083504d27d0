from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from viralflow.errors import ApiKeyNotConfiguredError, ConfigurationError
from viralflow.ingestion import MAX_ASSET_BYTES

_PROVIDER_ENV_VARS = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
}

_DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-5-20250929",
    "openai": "gpt-4o",
}


@dataclass
class RuntimeEnv:
    provider_api_key: str
    provider_env_var: str


@dataclass
class AppConfig:
    provider_name: str
    model: str
    max_tokens: int
    temperature: float
    image_model: str
    video_model: str
    video_poll_seconds: float
    media_output_dir: str
    max_asset_bytes: int
    state_db_path: str
    persistence_enabled: bool
    log_level: str
    log_consumers: list | None


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            try:
                return json.load(f)
            except json.JSONDecodeError as ex:
                raise ConfigurationError(f"{config_path} is not valid JSON: {ex}") from ex
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def parse_app_config(config: dict) -> AppConfig:
    provider_name = str(config.get("Provider", "anthropic")).strip().lower()
    if provider_name not in _PROVIDER_ENV_VARS:
        raise ConfigurationError(f"Unknown Provider {provider_name!r}; expected 'anthropic' or 'openai'")
    try:
        return AppConfig(
            provider_name=provider_name,
            model=config.get("Model", _DEFAULT_MODELS[provider_name]),
            max_tokens=int(config.get("MaxTokens", 8192)),
            temperature=float(config.get("Temperature", 1.0)),
            image_model=str(config.get("ImageModel", "")),
            video_model=str(config.get("VideoModel", "")),
            video_poll_seconds=float(config.get("VideoPollSeconds", 5.0)),
            media_output_dir=str(config.get("MediaOutputDir", ".viralflow/media")),
            max_asset_bytes=int(config.get("MaxAssetBytes", MAX_ASSET_BYTES)),
            state_db_path=str(config.get("StateDbPath", ".viralflow/state.db")),
            persistence_enabled=_to_bool(config.get("PersistenceEnabled", True), default=True),
            log_level=config.get("LogLevel", "INFO"),
            log_consumers=config.get("LogConsumers"),
        )
    except (TypeError, ValueError) as ex:
        raise ConfigurationError(f"Invalid config value: {ex}") from ex


def resolve_runtime_env(provider_name: str) -> RuntimeEnv:
    env_var = _PROVIDER_ENV_VARS.get(provider_name, "ANTHROPIC_API_KEY")
    api_key = os.environ.get(env_var, "")
    if not api_key:
        raise ApiKeyNotConfiguredError(f"{env_var} environment variable is required.")
    return RuntimeEnv(provider_api_key=api_key, provider_env_var=env_var)
