from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path

from tests.support.fake_transport import FakeTransport, ManualSpawn
from tuit.file_tree_model import FileTreeModel
from tuit.history import HistoryLog
from tuit.runtime import RuntimeLoopCallbacks, RuntimeLoopTiming, run_main_loop
from tuit.runtime.config import AppConfig
from tuit.runtime.controller import AppController, Tab
from tuit.transfer import SessionManager, SessionState
from tuit.transfer.events import Finished


class _ScriptedTerminal:
    """Feeds a fixed key script and records every frame written."""

    def __init__(self, keys: list[str], sizes: list[tuple[int, int]] | None = None) -> None:
        self.keys = list(keys)
        self.sizes = list(sizes or [(80, 24)])
        self.frames: list[list[str]] = []
        self.timeouts: list[int | None] = []

    def read_key(self, _fd: int, timeout_ms: int | None = None) -> str:
        self.timeouts.append(timeout_ms)
        return self.keys.pop(0) if self.keys else "q"

    def terminal_size(self) -> os.terminal_size:
        size = self.sizes.pop(0) if len(self.sizes) > 1 else self.sizes[0]
        return os.terminal_size(size)

    def write_frame(self, lines: list[str]) -> None:
        self.frames.append(lines)

    def callbacks(self) -> RuntimeLoopCallbacks:
        return RuntimeLoopCallbacks(
            read_key=self.read_key,
            terminal_size=self.terminal_size,
            write_frame=self.write_frame,
        )


class RuntimeLoopTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name).resolve()
        (root / "a.txt").write_text("a", encoding="utf-8")
        self.file = root / "a.txt"
        tree = FileTreeModel()
        tree.expand(tree.load_root(root).node_id)
        history = HistoryLog(None)
        self.manager = SessionManager(
            FakeTransport(),
            receive_dir=root,
            history=history,
            disk_reserve=0,
            spawn=ManualSpawn(),
        )
        self.app = AppController(
            AppConfig.incognito(),
            tree,
            self.manager,
            history,
            persist_preferences=lambda config, **_: config,
        )

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_loop_renders_then_quits_on_q(self) -> None:
        terminal = _ScriptedTerminal(["TAB", "TAB", "q"])

        run_main_loop(self.app, 0, terminal.callbacks(), RuntimeLoopTiming(key_timeout_ms=5))

        self.assertTrue(self.app.state.quit)
        self.assertIs(self.app.state.tab, Tab.ACTIVE)
        self.assertEqual(len(terminal.frames), 3)
        self.assertTrue(all(len(frame) == 24 for frame in terminal.frames))
        self.assertEqual(set(terminal.timeouts), {5})

    def test_idle_ticks_do_not_repaint(self) -> None:
        terminal = _ScriptedTerminal(["", "", "", "q"])

        run_main_loop(self.app, 0, terminal.callbacks())

        self.assertEqual(len(terminal.frames), 1)

    def test_resize_forces_repaint(self) -> None:
        terminal = _ScriptedTerminal(["", "", "q"], sizes=[(80, 24), (100, 30), (100, 30)])

        run_main_loop(self.app, 0, terminal.callbacks())

        self.assertEqual(len(terminal.frames), 2)
        self.assertEqual(len(terminal.frames[1]), 30)

    def test_worker_events_are_applied_each_tick(self) -> None:
        session = self.manager.start_send([self.file])
        self.manager.post(Finished(session.session_id, SessionState.COMPLETED))
        terminal = _ScriptedTerminal(["q"])

        run_main_loop(self.app, 0, terminal.callbacks())

        self.assertIs(session.state, SessionState.COMPLETED)
        self.assertIn("completed", self.app.state.status)

    def test_info_status_clears_after_idle_ticks(self) -> None:
        self.app.flash("hello")
        terminal = _ScriptedTerminal(["", "", "", "q"])

        run_main_loop(self.app, 0, terminal.callbacks(), RuntimeLoopTiming(status_clear_ticks=2))

        self.assertEqual(self.app.state.status, "")

    def test_error_status_is_kept(self) -> None:
        self.app.flash_error("boom")
        terminal = _ScriptedTerminal(["", "", "", "q"])

        run_main_loop(self.app, 0, terminal.callbacks(), RuntimeLoopTiming(status_clear_ticks=2))

        self.assertEqual(self.app.state.status, "boom")


if __name__ == "__main__":
    unittest.main()
