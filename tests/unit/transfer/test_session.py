"""Tests for the transfer session state machine and its derived views."""

from __future__ import annotations

import unittest

from tuit.transfer import ConnectionKind, Direction, ItemState, SessionState, TransferSession
from tuit.transfer.session import InvalidTransition, display_name_for


def _session(*sizes: int) -> TransferSession:
    session = TransferSession(session_id=1, direction=Direction.SEND)
    session.set_items([(f"f{idx}.bin", size) for idx, size in enumerate(sizes)])
    return session


class SessionTransitionTests(unittest.TestCase):
    def test_happy_path_sets_timestamps(self) -> None:
        session = _session(10)
        session.begin_negotiating(now=100.0)
        session.mark_active(ConnectionKind.DIRECT)
        session.finish(SessionState.COMPLETED, now=103.5)

        self.assertIs(session.state, SessionState.COMPLETED)
        self.assertEqual(session.started_at, 100.0)
        self.assertEqual(session.ended_at, 103.5)
        self.assertEqual(session.elapsed_seconds, 3.5)
        self.assertIs(session.connection, ConnectionKind.DIRECT)

    def test_terminal_states_accept_no_further_transitions(self) -> None:
        for outcome in (SessionState.COMPLETED, SessionState.FAILED, SessionState.CANCELLED):
            session = _session(1)
            session.begin_negotiating()
            session.finish(outcome)
            for target in SessionState:
                with self.subTest(outcome=outcome, target=target), self.assertRaises(InvalidTransition):
                    session.transition(target)

    def test_cancel_from_negotiating_or_active_ends_cancelled(self) -> None:
        negotiating = _session(1)
        negotiating.begin_negotiating()
        negotiating.finish(SessionState.CANCELLED)
        self.assertIs(negotiating.state, SessionState.CANCELLED)

        active = _session(1)
        active.begin_negotiating()
        active.mark_active()
        active.finish(SessionState.CANCELLED)
        self.assertIs(active.state, SessionState.CANCELLED)

    def test_completed_from_negotiating_passes_through_active(self) -> None:
        session = _session(1)
        session.begin_negotiating()
        session.finish(SessionState.COMPLETED)
        self.assertIs(session.state, SessionState.COMPLETED)

    def test_created_cannot_jump_to_active_or_completed(self) -> None:
        session = _session(1)
        with self.assertRaises(InvalidTransition):
            session.transition(SessionState.ACTIVE)
        with self.assertRaises(InvalidTransition):
            session.finish(SessionState.COMPLETED)

    def test_error_is_kept_only_for_failed(self) -> None:
        failed = _session(1)
        failed.begin_negotiating()
        failed.finish(SessionState.FAILED, "peer vanished")
        self.assertEqual(failed.error, "peer vanished")

        cancelled = _session(1)
        cancelled.finish(SessionState.CANCELLED, "ignored")
        self.assertIsNone(cancelled.error)

    def test_finish_rejects_non_terminal_outcome(self) -> None:
        with self.assertRaises(ValueError):
            _session(1).finish(SessionState.ACTIVE)

    def test_terminal_transition_clears_queue_position_and_rate(self) -> None:
        session = _session(10)
        session.queue_position = 2
        self.assertTrue(session.is_queued)
        session.finish(SessionState.CANCELLED)
        self.assertIsNone(session.queue_position)
        self.assertEqual(session.rate_bps, 0)


class SessionProgressTests(unittest.TestCase):
    def test_transferred_bytes_never_decrease(self) -> None:
        session = _session(100)
        self.assertTrue(session.record_progress(40, 10))
        self.assertFalse(session.record_progress(30, 5))
        self.assertEqual(session.transferred_bytes, 40)
        self.assertEqual(session.rate_bps, 5)
        self.assertFalse(session.record_progress(40))

    def test_percent_eta_and_remaining(self) -> None:
        session = _session(60, 40)
        session.begin_negotiating()
        session.mark_active()
        session.record_progress(25, 5)

        self.assertEqual(session.total_bytes, 100)
        self.assertEqual(session.remaining_bytes, 75)
        self.assertEqual(session.progress_percent, 25.0)
        self.assertEqual(session.eta_seconds, 15.0)

    def test_skipped_items_leave_the_total(self) -> None:
        session = _session(60, 40)
        session.begin_negotiating()
        session.mark_active()
        session.update_item(0, ItemState.SKIPPED)
        session.record_progress(40)

        self.assertEqual(session.total_bytes, 40)
        self.assertEqual(session.transferred_bytes, 40)
        self.assertEqual(session.progress_percent, 100.0)
        self.assertEqual(session.remaining_bytes, 0)

    def test_eta_unknown_without_rate_or_when_not_active(self) -> None:
        session = _session(10)
        self.assertIsNone(session.eta_seconds)
        session.begin_negotiating()
        session.mark_active()
        self.assertIsNone(session.eta_seconds)

    def test_empty_payload_is_complete_only_when_completed(self) -> None:
        session = _session(0)
        self.assertEqual(session.progress_percent, 0.0)
        session.begin_negotiating()
        session.finish(SessionState.COMPLETED)
        self.assertEqual(session.progress_percent, 100.0)

    def test_update_item_and_current_item(self) -> None:
        session = _session(1, 2, 3)
        self.assertEqual(session.current_item.name, "f0.bin")
        session.update_item(0, ItemState.DONE)
        session.update_item(2, ItemState.ACTIVE)
        session.update_item(9, ItemState.FAILED)

        self.assertEqual(session.current_item.name, "f2.bin")
        self.assertEqual(session.count_items(ItemState.DONE), 1)
        self.assertEqual(session.count_items(ItemState.FAILED), 0)


class DisplayNameTests(unittest.TestCase):
    def test_single_file_uses_its_name(self) -> None:
        self.assertEqual(display_name_for(["photos/cat.jpg"]), "cat.jpg")

    def test_common_top_folder(self) -> None:
        self.assertEqual(display_name_for(["photos/a.jpg", "photos/b/c.jpg"]), "photos/")

    def test_mixed_selection_counts_files(self) -> None:
        self.assertEqual(display_name_for(["a.txt", "b.txt"]), "2 files")
        self.assertEqual(display_name_for(["photos/a.jpg", "photos"]), "2 files")
        self.assertEqual(display_name_for([]), "(no files)")


if __name__ == "__main__":
    unittest.main()
