"""
rankedle.services.puzzle_service — Puzzle Lookup, History & End of Day
=======================================================================

Selection and paging of puzzles, independent of any one attempt.

A puzzle is *current* once it has been given today's date (see
:func:`~rankedle.services.generation_service.activate_puzzle`); generation
inserts puzzles undated.  History never shows today's puzzle to a member
who has not finished it, otherwise the answer would leak through the
history view.
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy import Engine, and_, func, select
from sqlalchemy.orm import Session, joinedload

from rankedle.constants import HISTORY_PAGE_SIZE, SEARCH_RESULT_LIMIT
from rankedle.database.engine import get_session
from rankedle.database.models import Attempt, AttemptStatus, DetailStatus, Puzzle, RankedleMap
from rankedle.engine.scoring import score_glyphs
from rankedle.services import stats_service

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
def current_puzzle(session: Session, today: date) -> Puzzle | None:
    """The most recent puzzle dated *today*, with its map loaded."""
    return session.scalar(
        select(Puzzle)
        .options(joinedload(Puzzle.map))
        .where(Puzzle.date == today)
        .order_by(Puzzle.id.desc())
        .limit(1)
    )


def last_puzzle(session: Session) -> Puzzle | None:
    """The most recently created puzzle, dated or not."""
    return session.scalar(select(Puzzle).order_by(Puzzle.id.desc()).limit(1))


def list_puzzles(engine: Engine) -> list[Puzzle]:
    with get_session(engine) as session:
        return list(session.scalars(select(Puzzle).order_by(Puzzle.id.desc())).all())


def get_attempt(session: Session, puzzle_id: int, member_id: int) -> Attempt | None:
    return session.scalar(
        select(Attempt).where(Attempt.puzzle_id == puzzle_id, Attempt.member_id == member_id)
    )


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------
def _map_summary(rmap: RankedleMap | None) -> dict:
    if rmap is None:
        return {"cover": None, "songName": None, "levelAuthorName": None}
    return {
        "cover": rmap.cover_url,
        "songName": rmap.display_name,
        "levelAuthorName": rmap.level_author_name,
    }


def history(
    engine: Engine,
    member_id: int,
    page: int,
    today: date,
    page_size: int = HISTORY_PAGE_SIZE,
    *,
    viewer_id: int | None = None,
) -> dict:
    """One page (0-based) of dated puzzles, newest first, with *member_id*'s
    glyph row for each.

    *viewer_id* is the member asking, when browsing someone else's history.
    Today's puzzle is listed only once both of them have finished it.
    """
    with get_session(engine) as session:
        conditions = [Puzzle.date.is_not(None), Puzzle.date <= today]

        todays = current_puzzle(session, today)
        if todays is not None:
            members = {member_id, viewer_id or member_id}
            todays_attempts = [get_attempt(session, todays.id, m) for m in members]
            if any(a is None or not a.is_terminal for a in todays_attempts):
                conditions.append(Puzzle.date < today)

        total = session.scalar(select(func.count(Puzzle.id)).where(and_(*conditions))) or 0
        puzzles = session.scalars(
            select(Puzzle)
            .options(joinedload(Puzzle.map))
            .where(and_(*conditions))
            .order_by(Puzzle.date.desc(), Puzzle.id.desc())
            .offset(max(page, 0) * page_size)
            .limit(page_size)
        ).all()

        attempts = {
            a.puzzle_id: a
            for a in session.scalars(
                select(Attempt).where(
                    Attempt.member_id == member_id,
                    Attempt.puzzle_id.in_([p.id for p in puzzles]),
                )
            ).all()
        } if puzzles else {}

        entries = []
        for puzzle in puzzles:
            attempt = attempts.get(puzzle.id)
            score = (
                score_glyphs(attempt.details, attempt.skips, attempt.success)
                if attempt is not None else None
            )
            entries.append({
                "id": puzzle.id,
                **_map_summary(puzzle.map),
                "score": score,
                "date": puzzle.date.isoformat(),
            })

    return {"page": page, "total": total, "history": entries}


# ---------------------------------------------------------------------------
# Guess autocomplete
# ---------------------------------------------------------------------------
def failed_map_ids(attempt: Attempt | None) -> set[int]:
    """Map ids the member already guessed wrong on this attempt."""
    if attempt is None:
        return set()
    return {
        d["mapId"] for d in attempt.details or []
        if d.get("status") == DetailStatus.FAIL and d.get("mapId") is not None
    }


def search_candidate_maps(
    engine: Engine, member_id: int, query: str, today: date
) -> list[dict]:
    """Up to five ``{id, name}`` maps matching every whitespace token of
    *query* against author, song or sub name."""
    tokens = query.split()
    if not tokens:
        return []

    with get_session(engine) as session:
        puzzle = current_puzzle(session, today)
        if puzzle is None:
            return []
        excluded = failed_map_ids(get_attempt(session, puzzle.id, member_id))

        stmt = select(RankedleMap)
        for token in tokens:
            stmt = stmt.where(
                RankedleMap.song_author_name.icontains(token, autoescape=True)
                | RankedleMap.song_name.icontains(token, autoescape=True)
                | RankedleMap.song_sub_name.icontains(token, autoescape=True)
            )
        if excluded:
            stmt = stmt.where(RankedleMap.id.not_in(excluded))
        maps = session.scalars(
            stmt.order_by(RankedleMap.song_name, RankedleMap.id).limit(SEARCH_RESULT_LIMIT)
        ).all()

        return [{"id": m.id, "name": m.display_name} for m in maps]


# ---------------------------------------------------------------------------
# End of day
# ---------------------------------------------------------------------------
def finish(engine: Engine, today: date, now: datetime | None = None) -> int:
    """Close out every puzzle dated before *today*.

    Open attempts with at least one skip are forfeited (``lost``); every
    open attempt is then folded into season stats, oldest puzzle first so
    streaks fold in play order.  Today's puzzle and the undated backlog are
    never touched.  Running it again is harmless: the stats gate refuses
    attempts already folded.

    Returns the number of attempts whose stats were updated.
    """
    processed = 0
    with get_session(engine) as session:
        open_attempts = session.scalars(
            select(Attempt)
            .join(Attempt.puzzle)
            .options(joinedload(Attempt.puzzle))
            .where(
                Puzzle.date.is_not(None),
                Puzzle.date < today,
                Attempt.status == AttemptStatus.IN_PROGRESS.value,
                Attempt.date_end.is_(None),
            )
            .order_by(Puzzle.date, Puzzle.id, Attempt.id)
        ).all()

        closed: set[int] = set()
        for attempt in open_attempts:
            if attempt.skips > 0:
                attempt.status = AttemptStatus.LOST.value
            if stats_service.update_player_stats(session, attempt.puzzle, attempt, now) is not None:
                processed += 1
                closed.add(attempt.puzzle_id)

    if processed:
        logger.info(
            "Finished puzzles %s: %d attempts closed",
            ", ".join(str(pid) for pid in sorted(closed)), processed,
        )
    return processed
