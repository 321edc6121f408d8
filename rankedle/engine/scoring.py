"""
rankedle.engine.scoring — Points, Result Glyphs & Dense Ranking
================================================================

Pure functions — no DB or Discord I/O.  The attempt and stats services
feed plain values in and persist whatever comes out.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import TypeVar

from rankedle.constants import (
    MAX_SKIPS,
    POINTS,
    STEP_GLYPHS,
    VOLUME_FIRST_TRY,
    VOLUME_LOST,
    VOLUME_WON,
)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Points
# ---------------------------------------------------------------------------
def points_for(skips: int) -> int:
    """Points earned by a win after *skips* skips / wrong guesses."""
    if not 0 <= skips <= MAX_SKIPS:
        raise ValueError(f"skip count out of range: {skips}")
    return POINTS[skips]


# ---------------------------------------------------------------------------
# Step glyphs
# ---------------------------------------------------------------------------
def build_steps(
    details: Sequence[dict] | None, skips: int, success: bool | None
) -> list[str | None]:
    """Six reveal slots: each recorded detail's status, then ``success``
    at index *skips* when the attempt was won."""
    steps: list[str | None] = [None] * MAX_SKIPS
    for i, detail in enumerate((details or [])[:MAX_SKIPS]):
        steps[i] = detail.get("status")
    if success and skips < MAX_SKIPS:
        steps[skips] = "success"
    return steps


def volume_glyph(skips: int, success: bool | None) -> str:
    if not success:
        return VOLUME_LOST
    return VOLUME_FIRST_TRY if skips == 0 else VOLUME_WON


def score_glyphs(
    details: Sequence[dict] | None, skips: int, success: bool | None
) -> list[str]:
    """Volume glyph followed by one block per reveal step."""
    steps = build_steps(details, skips, success)
    return [
        volume_glyph(skips, success),
        *(STEP_GLYPHS.get(step, STEP_GLYPHS[None]) for step in steps),
    ]


def share_text(puzzle_id: int, glyphs: Sequence[str], share_url: str) -> str:
    return f"Rankedle #{puzzle_id}\n\n{' '.join(glyphs)}\n\n<{share_url}>"


# ---------------------------------------------------------------------------
# Dense ranking
# ---------------------------------------------------------------------------
def dense_rank(
    rows: Iterable[T], key: Callable[[T], float]
) -> list[tuple[int, T]]:
    """Attach dense competition ranks to *rows* (already sorted by *key*
    descending).

    Equal keys share a rank; the next distinct value advances the rank
    by exactly one: ``[10, 10, 7, 5]`` → ``[1, 1, 2, 3]``.
    """
    ranked: list[tuple[int, T]] = []
    rank = 0
    previous: float | None = None
    for row in rows:
        value = key(row)
        if not ranked or value != previous:
            rank += 1
        previous = value
        ranked.append((rank, row))
    return ranked
