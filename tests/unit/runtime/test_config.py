"""Tests for startup config loading and preference persistence.

Validates per-key fallback for malformed values and the fatal cases for
unreadable or non-object config files.
"""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from tuit.errors import ConfigError
from tuit.runtime import config
from tuit.transfer import AskScope, ConflictMode


class ConfigBehaviorTests(unittest.TestCase):
    def test_missing_file_gives_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            loaded = config.load_config(path)

            self.assertEqual(loaded.path, path)
            self.assertFalse(loaded.is_incognito)
            self.assertTrue(loaded.persistence.history)
            self.assertEqual(loaded.preferences.theme, "default")
            self.assertEqual(loaded.transfer.max_concurrent_sends, 50)
            self.assertIs(loaded.transfer.conflict_mode, ConflictMode.ASK)

    def test_values_are_read_key_by_key(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text(
                json.dumps(
                    {
                        "persistence": {"history": False},
                        "preferences": {"theme": "ocean", "receive_dir": "~/inbox", "show_hidden": "yes"},
                        "transfer": {
                            "max_concurrent_sends": 3,
                            "max_concurrent_receives": 0,
                            "conflict_mode": "rename",
                            "conflict_ask_scope": "remaining",
                        },
                        "unknown": 1,
                    }
                ),
                encoding="utf-8",
            )

            loaded = config.load_config(path)

            self.assertFalse(loaded.persistence.history)
            self.assertIsNone(loaded.history_path)
            self.assertEqual(loaded.preferences.theme, "ocean")
            self.assertEqual(loaded.preferences.receive_dir, Path("~/inbox").expanduser())
            self.assertFalse(loaded.preferences.show_hidden)
            self.assertEqual(loaded.transfer.limits.max_concurrent_sends, 3)
            self.assertEqual(loaded.transfer.max_concurrent_receives, 50)
            self.assertIs(loaded.transfer.conflict_mode, ConflictMode.RENAME)
            self.assertIs(loaded.transfer.conflict_ask_scope, AskScope.REMAINING)

    def test_invalid_json_and_non_object_are_config_errors(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text("{broken", encoding="utf-8")
            with self.assertRaises(ConfigError):
                config.load_config(path)

            path.write_text("[1, 2]", encoding="utf-8")
            with self.assertRaises(ConfigError):
                config.load_config(path)

    def test_unreadable_path_is_config_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ConfigError):
                config.load_config(Path(tmp))

    def test_incognito_has_no_history_and_saves_nothing(self) -> None:
        incognito = config.AppConfig.incognito()
        self.assertTrue(incognito.is_incognito)
        self.assertIsNone(incognito.history_path)

        with mock.patch("tuit.runtime.config.Path.write_text") as write_mock:
            updated = config.save_preferences(incognito, theme="plain")

        write_mock.assert_not_called()
        self.assertEqual(updated.preferences.theme, "plain")

    def test_history_path_lives_in_data_dir(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with mock.patch("tuit.runtime.config.DATA_DIR", Path(tmp)):
                self.assertEqual(config.AppConfig().history_path, Path(tmp) / "history.json")

    def test_save_preferences_keeps_other_keys(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "nested" / "config.json"
            path.parent.mkdir()
            path.write_text(json.dumps({"transfer": {"conflict_mode": "skip"}}), encoding="utf-8")
            loaded = config.load_config(path)

            updated = config.save_preferences(loaded, theme="ocean", key_preset="vim")

            saved = json.loads(path.read_text(encoding="utf-8"))
            self.assertEqual(saved["transfer"], {"conflict_mode": "skip"})
            self.assertEqual(saved["preferences"], {"theme": "ocean", "key_preset": "vim"})
            self.assertEqual(updated.preferences.key_preset, "vim")
            self.assertEqual(config.load_config(path).preferences.theme, "ocean")

    def test_receive_dir_precedence(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            home = Path(tmp) / "home"
            cwd = Path(tmp) / "cwd"
            defaults = config.AppConfig()
            from_config = config.parse_config({"preferences": {"receive_dir": str(Path(tmp) / "cfg")}})

            self.assertEqual(
                config.resolve_receive_dir(Path(tmp) / "cli", from_config, home=home, cwd=cwd),
                Path(tmp) / "cli",
            )
            self.assertEqual(config.resolve_receive_dir(None, from_config, home=home, cwd=cwd), Path(tmp) / "cfg")
            self.assertEqual(config.resolve_receive_dir(None, defaults, home=home, cwd=cwd), cwd)

            (home / "Downloads").mkdir(parents=True)
            self.assertEqual(config.resolve_receive_dir(None, defaults, home=home, cwd=cwd), home / "Downloads")


if __name__ == "__main__":
    unittest.main()
