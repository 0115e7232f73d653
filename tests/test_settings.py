"""Tests for settings validation, file loading and environment overrides."""

import json
import tempfile
import unittest
from pathlib import Path

from suitewarden.config import (
    DRIVER_KIND_CLOUD,
    DRIVER_KIND_GRID,
    DRIVER_KIND_LOCAL,
    load_settings,
    mask_secret,
    validate_settings,
)


class SettingsTests(unittest.TestCase):
    """Validate settings normalization and precedence."""

    def test_defaults_are_local_without_capture(self) -> None:
        settings = validate_settings({})
        self.assertEqual(settings.browser, "chromium")
        self.assertEqual(settings.driver_kind, DRIVER_KIND_LOCAL)
        self.assertFalse(settings.capture_required)
        self.assertEqual(settings.task_drain_timeout, 15.0)
        self.assertTrue(settings.artifacts_dir)

    def test_rejects_unknown_browser(self) -> None:
        with self.assertRaises(ValueError):
            validate_settings({"browser": "netscape"})

    def test_rejects_cloud_without_credentials(self) -> None:
        with self.assertRaises(ValueError):
            validate_settings({"cloud_url": "wss://cloud.example/playwright"})

    def test_driver_kind_precedence(self) -> None:
        grid = validate_settings({"grid_url": "ws://grid:3000/"})
        self.assertEqual(grid.driver_kind, DRIVER_KIND_GRID)
        cloud = validate_settings(
            {
                "grid_url": "ws://grid:3000/",
                "cloud_url": "wss://cloud.example/playwright",
                "cloud_username": "user",
                "cloud_access_key": "key",
            }
        )
        self.assertEqual(cloud.driver_kind, DRIVER_KIND_CLOUD)

    def test_capture_url_implies_capture_required(self) -> None:
        settings = validate_settings({"capture_url": "http://capture.local/api"})
        self.assertTrue(settings.capture_required)

    def test_env_overrides_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "settings.json"
            path.write_text(json.dumps({"browser": "firefox", "workers": 2}), encoding="utf-8")
            settings = load_settings(
                path,
                environ={
                    "SUITEWARDEN_WORKERS": "4",
                    "SUITEWARDEN_HEADLESS": "false",
                    "UNRELATED": "x",
                },
            )
            self.assertEqual(settings.browser, "firefox")
            self.assertEqual(settings.workers, 4)
            self.assertFalse(settings.headless)

    def test_invalid_file_falls_back_to_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "settings.json"
            path.write_text("{not json", encoding="utf-8")
            settings = load_settings(path, environ={})
            self.assertEqual(settings.browser, "chromium")

    def test_invalid_env_value_raises(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ValueError):
                load_settings(Path(tmpdir) / "missing.json", environ={"SUITEWARDEN_HEADLESS": "maybe"})

    def test_mask_secret(self) -> None:
        self.assertEqual(mask_secret(""), "")
        self.assertEqual(mask_secret("short"), "*****")
        self.assertEqual(mask_secret("abcd-secret-wxyz"), "abcd...wxyz")


if __name__ == "__main__":
    unittest.main()
