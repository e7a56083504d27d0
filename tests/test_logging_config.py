import json
import shutil
import sys
import unittest
from pathlib import Path
from uuid import uuid4

from loguru import logger

from viralflow.errors import ConfigurationError
from viralflow.logging_config import set_log_studio, setup_logging

PROJECT_ROOT = Path(__file__).resolve().parents[1]


class SetupLoggingTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"logging-{uuid4().hex}"
        self._log_path = self._tmp_dir / "viralflow.log"

    def tearDown(self) -> None:
        logger.configure(handlers=[{"sink": sys.stderr}], extra={})
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def _lines(self) -> list[str]:
        logger.remove()
        return self._log_path.read_text(encoding="utf-8").splitlines()

    def test_records_are_tagged_with_active_studio(self) -> None:
        setup_logging(level="DEBUG", consumers=[{"type": "file", "path": str(self._log_path)}], studio="script")
        logger.info("draft requested")
        set_log_studio("video")
        logger.info("production opened")

        lines = self._lines()
        drafted = next(line for line in lines if "draft requested" in line)
        opened = next(line for line in lines if "production opened" in line)
        self.assertIn("| script ", drafted)
        self.assertIn("| video ", opened)

    def test_records_before_a_studio_opens_use_placeholder(self) -> None:
        setup_logging(consumers=[{"type": "file", "path": str(self._log_path)}])
        logger.warning("early")
        self.assertIn("| - ", next(line for line in self._lines() if "early" in line))

    def test_serialized_file_keeps_studio_in_extra(self) -> None:
        setup_logging(
            consumers=[{"type": "file", "path": str(self._log_path), "serialize": True}],
            studio="audit",
        )
        logger.info("review started")

        records = [json.loads(line)["record"] for line in self._lines()]
        record = next(r for r in records if r["message"] == "review started")
        self.assertEqual("audit", record["extra"]["studio"])

    def test_sink_level_overrides_default(self) -> None:
        setup_logging(level="DEBUG", consumers=[{"type": "file", "path": str(self._log_path), "level": "warning"}])
        logger.info("chatty")
        logger.warning("important")

        lines = self._lines()
        self.assertFalse(any("chatty" in line for line in lines))
        self.assertTrue(any("important" in line for line in lines))

    def test_descriptions(self) -> None:
        descriptions = setup_logging(
            consumers=[
                {"type": "console", "level": "WARNING"},
                {"type": "file", "path": str(self._log_path), "compression": "zip", "serialize": True},
            ]
        )
        self.assertEqual(
            ["console (stderr, WARNING)", f"file ({self._log_path}, json, rotate 10 MB, zip, INFO)"],
            descriptions,
        )

    def test_bad_configuration_raises_and_keeps_current_sinks(self) -> None:
        setup_logging(consumers=[{"type": "file", "path": str(self._log_path)}])
        bad_configs = (
            [{"type": "syslog"}],
            [{"type": "file", "colour": "red"}],
            [{"type": "console", "stream": "tty"}],
            [{"type": "console", "level": "LOUD"}],
            ["console"],
        )
        for consumers in bad_configs:
            with self.assertRaises(ConfigurationError):
                setup_logging(consumers=consumers)
        with self.assertRaises(ConfigurationError):
            setup_logging(level="chatty", consumers=[])

        logger.info("still logging")
        self.assertTrue(any("still logging" in line for line in self._lines()))


if __name__ == "__main__":
    unittest.main()
