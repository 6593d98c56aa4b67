import json
import os
import tempfile
import unittest
from unittest.mock import patch

from cursor_bridge import config, constants

_ENV_KEYS = ("PORT", "BROWSER_PATH", "BROWSER_USER_DATA_DIR", "BROWSER_HEADLESS", "BROWSER_ENGINE")


class TestConfig(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self._tmp.name, "config.json")
        self._patches = [
            patch.object(constants, "CONFIG_FILE", self.path),
            patch.dict(os.environ, {}, clear=False),
        ]
        for p in self._patches:
            p.start()
        for key in _ENV_KEYS:
            os.environ.pop(key, None)

    def tearDown(self) -> None:
        for p in reversed(self._patches):
            p.stop()
        self._tmp.cleanup()

    def _write(self, data) -> None:
        with open(self.path, "w") as f:
            json.dump(data, f)

    def test_defaults_when_file_missing(self) -> None:
        cfg = config.get_config()
        self.assertEqual(cfg["port"], 3010)
        self.assertTrue(cfg["headless"])
        self.assertEqual(cfg["browser_engine"], "chromium")
        self.assertEqual(cfg["relay_timeout_seconds"], 90.0)
        self.assertEqual(cfg["token_max_age_seconds"], 1800)
        self.assertFalse(cfg["attach_token_header"])
        self.assertEqual(cfg["api_keys"], [])

    def test_file_values_and_env_overrides(self) -> None:
        self._write({"port": 4000, "headless": True, "browser_path": "/opt/chrome"})
        os.environ["PORT"] = "5555"
        os.environ["BROWSER_HEADLESS"] = "false"
        os.environ["BROWSER_USER_DATA_DIR"] = "/tmp/profile"

        cfg = config.get_config()

        self.assertEqual(cfg["port"], 5555)
        self.assertFalse(cfg["headless"])
        self.assertEqual(cfg["browser_path"], "/opt/chrome")
        self.assertEqual(cfg["user_data_dir"], "/tmp/profile")

    def test_broken_file_falls_back_to_defaults(self) -> None:
        with open(self.path, "w") as f:
            f.write("{broken")
        self.assertEqual(config.get_config()["port"], 3010)

    def test_api_keys_are_normalized(self) -> None:
        self._write({"api_keys": ["sk-plain", {"key": "sk-named", "name": "ci"}, {"name": "no key"}, 7]})

        keys = config.get_config()["api_keys"]

        self.assertEqual([k["key"] for k in keys], ["sk-plain", "sk-named"])
        self.assertEqual(keys[0]["name"], "Unnamed Key")

    def test_unknown_engine_falls_back(self) -> None:
        os.environ["BROWSER_ENGINE"] = "netscape"
        self.assertEqual(config.get_config()["browser_engine"], "chromium")

    def test_configured_browser_path_wins(self) -> None:
        with patch.object(config, "find_browser_executable", return_value="/usr/bin/chromium") as finder:
            self.assertEqual(config.resolve_browser_path({"browser_path": "/custom/chrome"}), "/custom/chrome")
            finder.assert_not_called()
            self.assertEqual(config.resolve_browser_path({"browser_path": ""}), "/usr/bin/chromium")


if __name__ == "__main__":
    unittest.main()
