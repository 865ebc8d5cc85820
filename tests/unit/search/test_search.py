"""Tests for fuzzy name scoring and path ranking."""

from __future__ import annotations

import unittest
from pathlib import Path

from tuit.search import SUBSTRING_BONUS, fuzzy_score, name_score, rank_paths


class FuzzyScoreTests(unittest.TestCase):
    def test_empty_query_scores_zero(self) -> None:
        self.assertEqual(fuzzy_score("", "anything"), 0)

    def test_characters_must_appear_in_order(self) -> None:
        self.assertIsNotNone(fuzzy_score("rdm", "readme.md"))
        self.assertIsNone(fuzzy_score("mdr", "readme"))

    def test_matching_is_case_insensitive(self) -> None:
        self.assertEqual(fuzzy_score("READ", "readme"), fuzzy_score("read", "ReadMe"))

    def test_contiguous_run_beats_scattered_letters(self) -> None:
        contiguous = fuzzy_score("abc", "abc_zzz")
        scattered = fuzzy_score("abc", "a_z_b_z_c")
        self.assertGreater(contiguous, scattered)


class NameScoreTests(unittest.TestCase):
    def test_empty_query_never_matches(self) -> None:
        self.assertIsNone(name_score("", "file.txt"))

    def test_substring_outranks_any_fuzzy_match(self) -> None:
        substring = name_score("port", "a_very_long_report_name.txt")
        fuzzy = name_score("port", "p_o_r_t")
        self.assertGreater(substring, SUBSTRING_BONUS // 2)
        self.assertGreater(substring, fuzzy)

    def test_earlier_substring_scores_higher(self) -> None:
        self.assertGreater(name_score("log", "log.txt"), name_score("log", "changelog"))


class RankPathsTests(unittest.TestCase):
    def test_ranks_by_final_component_only(self) -> None:
        ranked = rank_paths("docs", [Path("docs/readme.md"), Path("docs")])
        self.assertEqual([path for path, _ in ranked], [Path("docs")])

    def test_ties_are_broken_by_path_text(self) -> None:
        ranked = rank_paths("a.txt", [Path("z/a.txt"), Path("b/a.txt"), Path("m/a.txt")])
        self.assertEqual([path.as_posix() for path, _ in ranked], ["b/a.txt", "m/a.txt", "z/a.txt"])


if __name__ == "__main__":
    unittest.main()
