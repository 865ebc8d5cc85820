"""Case-insensitive subsequence scoring for file-name search."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

SUBSTRING_BONUS = 10_000


def fuzzy_score(query: str, candidate: str) -> int | None:
    if not query:
        return 0
    query_folded = query.casefold()
    candidate_folded = candidate.casefold()

    score = 0
    prev_idx = -1
    run = 0
    for needle in query_folded:
        idx = candidate_folded.find(needle, prev_idx + 1)
        if idx < 0:
            return None
        if idx == prev_idx + 1:
            run += 1
            score += 20 + min(16, run * 4)
        else:
            gap = idx - prev_idx - 1
            run = 0
            score -= min(40, gap * 2)
        if idx == 0 or candidate_folded[idx - 1] in "/_- .":
            score += 35
        prev_idx = idx

    score -= len(candidate_folded) // 5
    return score


def name_score(query: str, name: str) -> int | None:
    """Score ``name`` against ``query``; contiguous substrings always outrank gaps."""
    if not query:
        return None
    substr_idx = name.casefold().find(query.casefold())
    if substr_idx >= 0:
        return SUBSTRING_BONUS - (substr_idx * 50) - len(name)
    return fuzzy_score(query, name)


def rank_paths(query: str, paths: Iterable[Path]) -> list[tuple[Path, int]]:
    """Return ``(path, score)`` for paths whose final component matches.

    Ordered by descending score, then by POSIX path text so ties are stable.
    """
    scored: list[tuple[int, str, Path]] = []
    for path in paths:
        score = name_score(query, path.name)
        if score is None:
            continue
        scored.append((score, path.as_posix(), path))
    scored.sort(key=lambda item: (-item[0], item[1]))
    return [(path, score) for score, _, path in scored]


__all__ = [
    "SUBSTRING_BONUS",
    "fuzzy_score",
    "name_score",
    "rank_paths",
]
