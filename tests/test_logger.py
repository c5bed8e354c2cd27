import logging
import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from utils.logger import LOGGER_NAME, setup_logging


class TestSetupLogging(unittest.TestCase):
    def setUp(self):
        root = logging.getLogger()
        self._saved = (root.level, list(root.handlers), logging.getLogger(LOGGER_NAME).level)

    def tearDown(self):
        root = logging.getLogger()
        level, handlers, app_level = self._saved
        for handler in list(root.handlers):
            if handler not in handlers:
                root.removeHandler(handler)
        root.setLevel(level)
        logging.getLogger(LOGGER_NAME).setLevel(app_level)

    def test_second_call_changes_module_logger_levels(self):
        setup_logging()
        setup_logging("WARNING")

        self.assertEqual(logging.getLogger().level, logging.WARNING)
        self.assertFalse(logging.getLogger("spotify_api.auth").isEnabledFor(logging.INFO))

        setup_logging("DEBUG")
        self.assertTrue(logging.getLogger("spotify_api.client").isEnabledFor(logging.DEBUG))
        self.assertTrue(logging.getLogger(LOGGER_NAME).isEnabledFor(logging.DEBUG))

    def test_unknown_level_falls_back_to_info(self):
        setup_logging("LOUD")
        self.assertEqual(logging.getLogger(LOGGER_NAME).level, logging.INFO)


if __name__ == "__main__":
    unittest.main(verbosity=2)
