"""Fuzzy name matching used by the tree search."""

from __future__ import annotations

from .fuzzy import SUBSTRING_BONUS, fuzzy_score, name_score, rank_paths

__all__ = [
    "SUBSTRING_BONUS",
    "fuzzy_score",
    "name_score",
    "rank_paths",
]
