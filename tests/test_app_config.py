import os
import unittest
from unittest.mock import patch

from viralflow.app_config import parse_app_config, resolve_runtime_env
from viralflow.errors import ApiKeyNotConfiguredError, ConfigurationError
from viralflow.ingestion import MAX_ASSET_BYTES


class ParseAppConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        config = parse_app_config({})
        self.assertEqual("anthropic", config.provider_name)
        self.assertEqual("claude-sonnet-4-5-20250929", config.model)
        self.assertEqual(MAX_ASSET_BYTES, config.max_asset_bytes)
        self.assertTrue(config.persistence_enabled)
        self.assertIsNone(config.log_consumers)

    def test_openai_gets_its_own_default_model(self) -> None:
        config = parse_app_config({"Provider": "OpenAI", "VideoModel": "sora-2"})
        self.assertEqual("openai", config.provider_name)
        self.assertEqual("gpt-4o", config.model)
        self.assertEqual("sora-2", config.video_model)

    def test_string_values_are_coerced(self) -> None:
        config = parse_app_config({"MaxTokens": "2048", "Temperature": "0.3", "PersistenceEnabled": "off"})
        self.assertEqual(2048, config.max_tokens)
        self.assertAlmostEqual(0.3, config.temperature)
        self.assertFalse(config.persistence_enabled)

    def test_unknown_provider_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            parse_app_config({"Provider": "gemini"})

    def test_bad_number_is_a_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            parse_app_config({"MaxTokens": "lots"})


class ResolveRuntimeEnvTests(unittest.TestCase):
    def test_reads_provider_key(self) -> None:
        with patch.dict(os.environ, {"OPENAI_API_KEY": "sk-test"}):
            env = resolve_runtime_env("openai")
        self.assertEqual("sk-test", env.provider_api_key)
        self.assertEqual("OPENAI_API_KEY", env.provider_env_var)

    def test_missing_key_raises(self) -> None:
        with patch.dict(os.environ, {"ANTHROPIC_API_KEY": ""}):
            with self.assertRaises(ApiKeyNotConfiguredError):
                resolve_runtime_env("anthropic")
