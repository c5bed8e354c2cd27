import json
import os
import sys
import tempfile
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import config as cfg


class TestValidateConfig(unittest.TestCase):
    def test_defaults_are_valid(self):
        ok, errors = cfg.validate_config(cfg.DEFAULT_CONFIG.copy())
        self.assertTrue(ok, errors)

    def test_rejects_bad_values(self):
        cases = {
            "spotify_request_timeout": 0,
            "spotify_max_pages": 51,
            "spotify_feature_batch_size": "100",
            "spotify_auth_logout_delay": True,
            "spotify_scopes": ["playlist-read-private", 3],
            "log_level": "TRACE",
        }
        for key, value in cases.items():
            with self.subTest(key=key):
                config = cfg.DEFAULT_CONFIG.copy()
                config[key] = value
                ok, errors = cfg.validate_config(config)
                self.assertFalse(ok)
                self.assertTrue(any(key in e for e in errors))

    def test_missing_required_field(self):
        config = cfg.DEFAULT_CONFIG.copy()
        del config["spotify_token_cache_path"]
        ok, errors = cfg.validate_config(config)
        self.assertFalse(ok)
        self.assertIn("Missing required field: spotify_token_cache_path", errors)


class TestConfigFile(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self._tmp.name, "config.json")

    def tearDown(self):
        self._tmp.cleanup()

    def test_load_applies_defaults(self):
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"spotify_client_id": "abc"}, f)

        config = cfg.load_config(self.path)

        self.assertEqual(config["spotify_client_id"], "abc")
        self.assertEqual(config["spotify_max_pages"], 50)
        self.assertEqual(config["spotify_feature_batch_size"], 100)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            cfg.load_config(self.path)
        self.assertEqual(cfg.get_config_value("log_level", "INFO", path=self.path), "INFO")

    def test_update_validates_before_saving(self):
        cfg.reset_to_defaults(self.path)

        ok, _ = cfg.update_config("spotify_max_pages", 500, path=self.path)
        self.assertFalse(ok)
        self.assertEqual(cfg.get_config_value("spotify_max_pages", path=self.path), 50)

        ok, _ = cfg.update_config("spotify_max_pages", 10, path=self.path)
        self.assertTrue(ok)
        self.assertEqual(cfg.get_config_value("spotify_max_pages", path=self.path), 10)

    def test_unknown_key(self):
        cfg.reset_to_defaults(self.path)
        ok, message = cfg.update_config("download_format", "mp3", path=self.path)
        self.assertFalse(ok)
        self.assertIn("Unknown config key", message)


if __name__ == "__main__":
    unittest.main(verbosity=2)
