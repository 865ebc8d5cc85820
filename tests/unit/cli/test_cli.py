"""CLI argument and startup-validation tests.

Verifies how ``tuit.cli.main`` picks the start and receive directories, and
which startup failures end the process with a non-zero exit code.
"""

from __future__ import annotations

import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest import mock

from tuit import __version__, cli


class CliStartupTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name).resolve()
        self.inbox = self.root / "inbox"
        self.inbox.mkdir()
        patcher = mock.patch("tuit.cli.setup_logging")
        self.setup_logging = patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_defaults_to_current_working_directory(self) -> None:
        previous_cwd = Path.cwd()
        try:
            os.chdir(self.root)
            with mock.patch("tuit.cli.run_app", return_value=0) as run_app:
                code = cli.main(["--incognito", "--receive-dir", str(self.inbox)])
        finally:
            os.chdir(previous_cwd)

        self.assertEqual(code, 0)
        start, config, receive_dir = run_app.call_args.args
        self.assertEqual(start, self.root)
        self.assertTrue(config.is_incognito)
        self.assertEqual(receive_dir, self.inbox)
        self.setup_logging.assert_called_once_with(config)

    def test_explicit_path_and_config_file(self) -> None:
        config_path = self.root / "config.json"
        config_path.write_text(json.dumps({"preferences": {"receive_dir": str(self.inbox)}}), encoding="utf-8")

        with mock.patch("tuit.cli.run_app", return_value=0) as run_app:
            code = cli.main([str(self.root), "--config", str(config_path)])

        self.assertEqual(code, 0)
        start, config, receive_dir = run_app.call_args.args
        self.assertEqual(start, self.root)
        self.assertEqual(config.path, config_path)
        self.assertFalse(config.is_incognito)
        self.assertEqual(receive_dir, self.inbox)

    def test_run_app_exit_code_is_returned(self) -> None:
        with mock.patch("tuit.cli.run_app", return_value=1):
            code = cli.main([str(self.root), "--incognito", "--receive-dir", str(self.inbox)])
        self.assertEqual(code, 1)

    def test_malformed_config_exits_non_zero(self) -> None:
        config_path = self.root / "config.json"
        config_path.write_text("{nope", encoding="utf-8")
        stderr = io.StringIO()

        with mock.patch("tuit.cli.run_app") as run_app, redirect_stderr(stderr):
            code = cli.main([str(self.root), "--config", str(config_path)])

        self.assertEqual(code, 1)
        run_app.assert_not_called()
        self.setup_logging.assert_not_called()
        self.assertIn("tuit:", stderr.getvalue())

    def test_incognito_ignores_malformed_config(self) -> None:
        config_path = self.root / "config.json"
        config_path.write_text("{nope", encoding="utf-8")

        with mock.patch("tuit.cli.run_app", return_value=0) as run_app:
            code = cli.main([str(self.root), "--incognito", "--config", str(config_path), "--receive-dir", str(self.inbox)])

        self.assertEqual(code, 0)
        run_app.assert_called_once()

    def test_missing_receive_dir_exits_non_zero(self) -> None:
        stderr = io.StringIO()
        with mock.patch("tuit.cli.run_app") as run_app, redirect_stderr(stderr):
            code = cli.main([str(self.root), "--incognito", "--receive-dir", str(self.root / "missing")])

        self.assertEqual(code, 1)
        run_app.assert_not_called()
        self.assertIn("missing", stderr.getvalue())

    def test_unreadable_start_dir_exits_non_zero(self) -> None:
        a_file = self.root / "file.txt"
        a_file.write_text("x", encoding="utf-8")
        with mock.patch("tuit.cli.run_app") as run_app, redirect_stderr(io.StringIO()):
            code = cli.main([str(a_file), "--incognito", "--receive-dir", str(self.inbox)])

        self.assertEqual(code, 1)
        run_app.assert_not_called()

    def test_version_flag(self) -> None:
        stdout = io.StringIO()
        with redirect_stdout(stdout), self.assertRaises(SystemExit) as raised:
            cli.main(["--version"])

        self.assertEqual(raised.exception.code, 0)
        self.assertEqual(stdout.getvalue().strip(), f"tuit {__version__}")


if __name__ == "__main__":
    unittest.main()
