"""Regression tests for raw-key decoding.

Covers ESC timing, arrow/tilde sequences, and control-key token mapping.
These tests protect ticket entry and navigation in raw terminal mode.
"""

import os
import time
import unittest

from tuit import input as input_mod


class ReadKeyRegressionTests(unittest.TestCase):
    def setUp(self) -> None:
        input_mod._PENDING_BYTES.clear()

    def tearDown(self) -> None:
        input_mod._PENDING_BYTES.clear()

    def _read_all(self, payload: bytes, count: int) -> list[str]:
        read_fd, write_fd = os.pipe()
        try:
            os.write(write_fd, payload)
            return [input_mod.read_key(read_fd, timeout_ms=20) for _ in range(count)]
        finally:
            os.close(read_fd)
            os.close(write_fd)

    def test_single_escape_returns_esc_without_second_keypress(self) -> None:
        started = time.monotonic()
        keys = self._read_all(b"\x1b", 1)
        elapsed = time.monotonic() - started

        self.assertEqual(keys, ["ESC"])
        self.assertLess(elapsed, 0.2)

    def test_timeout_without_input_returns_empty_token(self) -> None:
        self.assertEqual(self._read_all(b"", 1), [""])

    def test_arrow_sequences_are_recognized(self) -> None:
        self.assertEqual(self._read_all(b"\x1b[A\x1b[B\x1b[C\x1b[D", 4), ["UP", "DOWN", "RIGHT", "LEFT"])

    def test_ss3_arrow_form_is_recognized(self) -> None:
        self.assertEqual(self._read_all(b"\x1bOA\x1bOH", 2), ["UP", "HOME"])

    def test_shift_tab_and_tilde_keys(self) -> None:
        self.assertEqual(
            self._read_all(b"\x1b[Z\x1b[5~\x1b[6~\x1b[3~", 4),
            ["SHIFT_TAB", "PAGE_UP", "PAGE_DOWN", "DELETE"],
        )

    def test_escape_does_not_swallow_following_printable_key(self) -> None:
        self.assertEqual(self._read_all(b"\x1ba", 2), ["ESC", "a"])

    def test_control_keys_are_recognized(self) -> None:
        self.assertEqual(
            self._read_all(b"\x03\x04\x12\x15\t\x7f\r", 7),
            ["CTRL_C", "CTRL_D", "CTRL_R", "CTRL_U", "TAB", "BACKSPACE", "ENTER"],
        )

    def test_multibyte_utf8_is_one_key(self) -> None:
        self.assertEqual(self._read_all("é→".encode("utf-8"), 2), ["é", "→"])

    def test_pasted_ticket_arrives_as_printable_keys(self) -> None:
        self.assertEqual("".join(self._read_all(b"tuit1ab", 7)), "tuit1ab")


if __name__ == "__main__":
    unittest.main()
