"""Tests for incoming-file destination decisions.

Covers rename numbering, per-mode outcomes, and the containment check that
refuses names or symlinks escaping the receive root.
"""

from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path

from tuit.errors import PathTraversalError
from tuit.transfer import (
    AskScope,
    AskUser,
    ConflictChoice,
    ConflictMode,
    ExistingFile,
    Proceed,
    Skip,
    apply_choice,
    destination_for,
    ensure_within_root,
    existing_metadata,
    next_available_name,
    resolve,
    resolve_incoming,
)

_EXISTING = ExistingFile(size=3, mtime_ns=1)


class NextAvailableNameTests(unittest.TestCase):
    def test_skips_taken_numbers(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "a.txt").write_text("x", encoding="utf-8")
            (root / "a (1).txt").write_text("x", encoding="utf-8")

            self.assertEqual(next_available_name(root / "a.txt"), root / "a (2).txt")

    def test_names_without_extension_get_suffix_at_end(self) -> None:
        self.assertEqual(next_available_name(Path("d/report"), exists=lambda _: False), Path("d/report (1)"))

    def test_dotfiles_keep_whole_name_as_stem(self) -> None:
        self.assertEqual(next_available_name(Path(".bashrc"), exists=lambda _: False), Path(".bashrc (1)"))

    def test_only_last_extension_is_preserved(self) -> None:
        taken = {Path("a.tar (1).gz")}
        self.assertEqual(next_available_name(Path("a.tar.gz"), exists=taken.__contains__), Path("a.tar (2).gz"))


class ResolveTests(unittest.TestCase):
    def test_free_destination_always_proceeds(self) -> None:
        for mode in ConflictMode:
            self.assertEqual(resolve(Path("x.txt"), mode, None), Proceed(Path("x.txt")))

    def test_each_mode_handles_an_existing_file(self) -> None:
        dest = Path("x.txt")
        self.assertEqual(resolve(dest, ConflictMode.OVERWRITE, _EXISTING), Proceed(dest, overwrite=True))
        self.assertEqual(resolve(dest, ConflictMode.SKIP, _EXISTING), Skip())
        self.assertEqual(
            resolve(dest, ConflictMode.RENAME, _EXISTING, exists=lambda _: False),
            Proceed(Path("x (1).txt")),
        )
        self.assertEqual(resolve(dest, ConflictMode.ASK, _EXISTING), AskUser(dest, _EXISTING))

    def test_skip_mode_never_touches_existing_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            target = root / "keep.txt"
            target.write_text("original", encoding="utf-8")

            decision = resolve_incoming(root, "keep.txt", ConflictMode.SKIP)

            self.assertIsInstance(decision, Skip)
            self.assertEqual(target.read_text(encoding="utf-8"), "original")

    def test_resolve_incoming_builds_nested_destinations(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            decision = resolve_incoming(root, "dir/sub/file.bin", ConflictMode.ASK)
            self.assertEqual(decision, Proceed(root / "dir" / "sub" / "file.bin"))

    def test_apply_choice_turns_answer_into_placement(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            (root / "a.txt").write_text("x", encoding="utf-8")
            asked = resolve_incoming(root, "a.txt", ConflictMode.ASK)
            self.assertIsInstance(asked, AskUser)

            self.assertEqual(apply_choice(asked, ConflictChoice.RENAME, root), Proceed(root / "a (1).txt"))
            self.assertEqual(apply_choice(asked, ConflictChoice.OVERWRITE, root), Proceed(root / "a.txt", overwrite=True))
            self.assertIsInstance(apply_choice(asked, ConflictChoice.SKIP, root), Skip)
            with self.assertRaises(ValueError):
                apply_choice(asked, ConflictChoice.CANCEL, root)

    def test_existing_metadata_reports_size(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "f"
            self.assertIsNone(existing_metadata(path))
            path.write_bytes(b"12345")
            self.assertEqual(existing_metadata(path).size, 5)


class ContainmentTests(unittest.TestCase):
    def test_traversal_names_are_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            for name in ("../outside.txt", "a/../../x", "/etc/passwd", "", "a//b", "./a", "a\\..\\b"):
                with self.subTest(name=name), self.assertRaises(PathTraversalError):
                    destination_for(root, name)

    def test_traversal_becomes_skip_with_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            decision = resolve_incoming(root, "../outside.txt", ConflictMode.OVERWRITE)
            self.assertIsInstance(decision, Skip)
            self.assertIsInstance(decision.error, PathTraversalError)
            self.assertFalse((root.parent / "outside.txt").exists())

    @unittest.skipUnless(hasattr(os, "symlink"), "symlinks unsupported")
    def test_symlinked_directory_pointing_outside_is_an_escape(self) -> None:
        with tempfile.TemporaryDirectory() as tmp, tempfile.TemporaryDirectory() as other:
            root = Path(tmp).resolve()
            (root / "escape").symlink_to(Path(other).resolve(), target_is_directory=True)

            with self.assertRaises(PathTraversalError):
                ensure_within_root(root, root / "escape" / "file.txt")
            self.assertIsInstance(resolve_incoming(root, "escape/file.txt", ConflictMode.ASK), Skip)

    def test_root_itself_is_not_a_valid_destination(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            with self.assertRaises(PathTraversalError):
                ensure_within_root(root, root)


class ModeParsingTests(unittest.TestCase):
    def test_from_name_falls_back_on_unknown_values(self) -> None:
        self.assertIs(ConflictMode.from_name(" Rename "), ConflictMode.RENAME)
        self.assertIs(ConflictMode.from_name("bogus"), ConflictMode.ASK)
        self.assertIs(ConflictMode.from_name(3, ConflictMode.SKIP), ConflictMode.SKIP)
        self.assertIs(AskScope.from_name("remaining"), AskScope.REMAINING)
        self.assertIs(AskScope.from_name(None), AskScope.PER_FILE)

    def test_cancel_has_no_placement_mode(self) -> None:
        self.assertIsNone(ConflictChoice.CANCEL.as_mode())
        self.assertIs(ConflictChoice.SKIP.as_mode(), ConflictMode.SKIP)


if __name__ == "__main__":
    unittest.main()
