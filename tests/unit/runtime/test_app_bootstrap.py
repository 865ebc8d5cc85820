"""Tests for assembling the controller from the startup config."""

from __future__ import annotations

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from tests.support.fake_transport import FakeTransport
from tuit.runtime import app as app_module
from tuit.runtime.config import AppConfig, load_config
from tuit.transfer import AskScope, ConflictMode


class BuildAppTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.base = Path(self._tmp.name).resolve()
        self.root = self.base / "work"
        self.root.mkdir()
        (self.root / "b.txt").write_text("b", encoding="utf-8")
        (self.root / "a").mkdir()
        (self.root / ".dot").write_text("", encoding="utf-8")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_tree_is_expanded_with_cursor_on_first_row(self) -> None:
        app = app_module.build_app(self.root, AppConfig.incognito(), self.base, transport=FakeTransport())

        names = [row.path.name for row in app.tree.visible_rows()]
        self.assertEqual(names, ["a", "b.txt"])
        self.assertEqual(app.tree.cursor_node().path, Path("a"))
        self.assertEqual(app.state.status, "")
        self.assertIsNone(app.history.path)

    def test_config_values_reach_tree_and_manager(self) -> None:
        config_path = self.base / "config.json"
        config_path.write_text(
            json.dumps(
                {
                    "persistence": {"history": False},
                    "preferences": {"show_hidden": True, "theme": "ocean", "key_preset": "vim"},
                    "transfer": {
                        "max_concurrent_sends": 2,
                        "conflict_mode": "skip",
                        "conflict_ask_scope": "remaining",
                    },
                }
            ),
            encoding="utf-8",
        )
        config = load_config(config_path)

        app = app_module.build_app(self.root, config, self.base / "inbox", transport=FakeTransport())

        self.assertIn(".dot", [row.path.name for row in app.tree.visible_rows()])
        self.assertEqual(app.theme_name, "ocean")
        self.assertEqual(app.key_preset, "vim")
        self.assertEqual(app.manager.limits.max_concurrent_sends, 2)
        self.assertIs(app.manager.conflict_mode, ConflictMode.SKIP)
        self.assertIs(app.manager.ask_scope, AskScope.REMAINING)
        self.assertEqual(app.manager.receive_dir, self.base / "inbox")

    def test_history_is_loaded_from_data_dir(self) -> None:
        data_dir = self.base / "data"
        data_dir.mkdir()
        (data_dir / "history.json").write_text(
            json.dumps(
                [
                    {
                        "session_id": 4,
                        "direction": "send",
                        "state": "completed",
                        "name": "old.txt",
                        "total_bytes": 3,
                        "files": [{"name": "old.txt", "size": 3}],
                    }
                ]
            ),
            encoding="utf-8",
        )
        with mock.patch("tuit.runtime.config.DATA_DIR", data_dir):
            app = app_module.build_app(self.root, AppConfig(), self.base, transport=FakeTransport())

        self.assertEqual([record.name for record in app.history], ["old.txt"])

    def test_unreadable_root_listing_is_flashed(self) -> None:
        with mock.patch("tuit.file_tree_model.model.list_directory_children", side_effect=app_module.IoError(self.root, "boom")):
            app = app_module.build_app(self.root, AppConfig.incognito(), self.base, transport=FakeTransport())

        self.assertTrue(app.state.status_is_error)
        self.assertIn("boom", app.state.status)
        self.assertEqual(app.tree.visible_rows(), [])


class RunAppTests(unittest.TestCase):
    def test_requires_interactive_terminal(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            with mock.patch("tuit.runtime.app.os.isatty", return_value=False), mock.patch(
                "tuit.runtime.app.sys.stdin"
            ), mock.patch("tuit.runtime.app.sys.stdout"), mock.patch("tuit.runtime.app.build_app") as build_mock:
                code = app_module.run_app(root, AppConfig.incognito(), root)

        self.assertEqual(code, 1)
        build_mock.assert_not_called()

    def test_shuts_down_manager_after_loop(self) -> None:
        fake_app = mock.Mock()
        terminal = mock.MagicMock()
        with mock.patch("tuit.runtime.app.os.isatty", return_value=True), mock.patch(
            "tuit.runtime.app.sys.stdin"
        ), mock.patch("tuit.runtime.app.sys.stdout"), mock.patch(
            "tuit.runtime.app.build_app", return_value=fake_app
        ), mock.patch(
            "tuit.runtime.app.TerminalController", return_value=terminal
        ), mock.patch(
            "tuit.runtime.app.run_main_loop", side_effect=RuntimeError("loop crashed")
        ):
            with self.assertRaises(RuntimeError):
                app_module.run_app(Path(os.curdir), AppConfig.incognito(), Path(os.curdir))

        terminal.raw_mode.assert_called_once_with()
        fake_app.manager.shutdown.assert_called_once_with()


if __name__ == "__main__":
    unittest.main()
