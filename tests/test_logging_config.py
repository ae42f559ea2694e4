import shutil
import unittest
from pathlib import Path
from uuid import uuid4

from loguru import logger

from companion_history.logging_config import LOG_FILE_NAME, normalize_level, setup_logging

PROJECT_ROOT = Path(__file__).resolve().parents[1]


class NormalizeLevelTests(unittest.TestCase):
    def test_aliases_and_case(self) -> None:
        self.assertEqual("WARNING", normalize_level("warn"))
        self.assertEqual("TRACE", normalize_level("Trace"))
        self.assertEqual("INFO", normalize_level(None))
        self.assertEqual("DEBUG", normalize_level("  ", default="DEBUG"))


class SetupLoggingTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"logging-{uuid4().hex}"

    def tearDown(self) -> None:
        logger.remove()
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def test_disabled_logging_keeps_only_warnings(self) -> None:
        self.assertEqual(["stderr (WARNING)"], setup_logging("DEBUG", enabled=False))

    def test_default_consumers_include_history_log(self) -> None:
        descriptions = setup_logging("debug", history_dir=str(self._tmp_dir))

        self.assertEqual("stderr (DEBUG)", descriptions[0])
        self.assertIn(LOG_FILE_NAME, descriptions[1])

    def test_unknown_consumer_is_skipped(self) -> None:
        descriptions = setup_logging("INFO", [{"type": "syslog"}, {"type": "console", "level": "error"}])

        self.assertEqual(["stderr (ERROR)"], descriptions)

    def test_file_consumer_without_path_or_dir_is_skipped(self) -> None:
        self.assertEqual([], setup_logging("INFO", [{"type": "file"}]))


if __name__ == "__main__":
    unittest.main()
