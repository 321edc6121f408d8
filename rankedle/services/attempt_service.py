"""
rankedle.services.attempt_service — Attempt State Machine
==========================================================

One :class:`Attempt` per (puzzle, member)::

    (none) ──play/skip/submit──▶ in_progress ──win──▶ won
                                      │
                                      └──7th step──▶ lost

``skip`` and ``submit`` on a terminal attempt are no-ops.  The move to a
terminal state folds the attempt into season stats *in the same
transaction*; the results channel is re-synced after commit.

Concurrency: the ``version`` column makes two writers on the same row
collide with :class:`StaleDataError`, and two first writes collide on the
``(puzzle_id, member_id)`` unique constraint.  The loser re-reads and
returns the winner's row, so terminal side effects fire once.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, date, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from rankedle.constants import FULL_PREVIEW_FILE, HINT_SKIPS, MAX_SKIPS, preview_file
from rankedle.database.engine import get_session
from rankedle.database.models import (
    Attempt,
    AttemptStatus,
    DetailStatus,
    MessageKind,
    Puzzle,
    RankedleMap,
)
from rankedle.engine import scoring
from rankedle.errors import ForbiddenError, NoActivePuzzleError, NotFoundError
from rankedle.services import stats_service
from rankedle.services.guild_service import sync_results_channel
from rankedle.services.message_service import get_message, random_flavor_message
from rankedle.services.puzzle_service import current_puzzle, get_attempt

if TYPE_CHECKING:
    from rankedle.config import RankedleConfig
    from rankedle.services.guild_service import GuildGateway
    from rankedle.services.media_service import MediaToolchain

logger = logging.getLogger(__name__)

Mutation = Callable[[Session, Puzzle, Attempt], None]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _utcnow() -> datetime:
    return datetime.now(UTC)


def require_puzzle(session: Session, today: date) -> Puzzle:
    puzzle = current_puzzle(session, today)
    if puzzle is None:
        raise NoActivePuzzleError()
    return puzzle


def _new_attempt(puzzle: Puzzle, member_id: int, now: datetime) -> Attempt:
    return Attempt(
        puzzle_id=puzzle.id,
        member_id=member_id,
        date_start=now,
        skips=0,
        details=None,
        hint=False,
        status=AttemptStatus.IN_PROGRESS.value,
    )


def _append_detail(attempt: Attempt, detail: dict) -> None:
    # JSON columns are not mutation-tracked: always assign a new list
    attempt.details = [*(attempt.details or []), detail]


def _close(session: Session, attempt: Attempt, status: AttemptStatus, kind: MessageKind) -> None:
    attempt.status = status.value
    attempt.message_id = random_flavor_message(session, kind)


def _reread(engine: Engine, member_id: int, today: date) -> Attempt | None:
    with get_session(engine) as session:
        puzzle = require_puzzle(session, today)
        return get_attempt(session, puzzle.id, member_id)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
def _transition(
    engine: Engine,
    cfg: RankedleConfig,
    member_id: int,
    mutate: Mutation,
    *,
    today: date,
    now: datetime,
    gateway: GuildGateway | None,
) -> Attempt | None:
    """Run *mutate* on the member's open attempt and apply terminal effects."""
    if cfg.is_banned(member_id):
        raise ForbiddenError()

    try:
        with get_session(engine) as session:
            puzzle = require_puzzle(session, today)
            attempt = get_attempt(session, puzzle.id, member_id)
            if attempt is not None and attempt.is_terminal:
                return attempt

            if attempt is None:
                attempt = _new_attempt(puzzle, member_id, now)
                session.add(attempt)
            elif attempt.date_start is None:
                attempt.date_start = now

            mutate(session, puzzle, attempt)

            finished = attempt.is_terminal
            if finished:
                stats_service.update_player_stats(session, puzzle, attempt, now)
            else:
                session.flush()
    except (StaleDataError, IntegrityError):
        logger.info("Concurrent update on attempt of member %d; re-reading", member_id)
        return _reread(engine, member_id, today)

    if finished:
        logger.info(
            "Attempt closed: puzzle=%d member=%d status=%s skips=%d",
            puzzle.id, member_id, attempt.status, attempt.skips,
        )
        sync_results_channel(
            engine,
            gateway,
            puzzle_id=puzzle.id,
            channel_id=cfg.results_channel_id,
            everyone_role_id=cfg.everyone_role_id,
            admin_role_id=cfg.admin_role_id,
        )
    return attempt


def skip(
    engine: Engine,
    cfg: RankedleConfig,
    member_id: int,
    *,
    today: date,
    now: datetime | None = None,
    gateway: GuildGateway | None = None,
) -> Attempt | None:
    """Reveal one more step, or lose once all six steps are spent."""
    now = now or _utcnow()

    def mutate(session: Session, puzzle: Puzzle, attempt: Attempt) -> None:
        if attempt.skips >= MAX_SKIPS:
            _close(session, attempt, AttemptStatus.LOST, MessageKind.LOSE)
            return
        attempt.skips += 1
        _append_detail(attempt, {
            "status": DetailStatus.SKIP.value,
            "text": f"SKIP ({MAX_SKIPS - attempt.skips + 1})",
            "date": int(now.timestamp()),
        })

    return _transition(engine, cfg, member_id, mutate, today=today, now=now, gateway=gateway)


def submit(
    engine: Engine,
    cfg: RankedleConfig,
    member_id: int,
    map_id: int,
    *,
    today: date,
    now: datetime | None = None,
    gateway: GuildGateway | None = None,
) -> Attempt | None:
    """Guess map *map_id*.

    The guess wins when its (author, song) pair equals the puzzle map's,
    so two catalog entries of the same song are both correct.
    """
    now = now or _utcnow()
    if cfg.is_banned(member_id):
        raise ForbiddenError()

    with get_session(engine) as session:
        guess = session.get(RankedleMap, map_id)
        if guess is None:
            raise NotFoundError(f"Unknown map {map_id}")

    def mutate(session: Session, puzzle: Puzzle, attempt: Attempt) -> None:
        correct = guess.identity == puzzle.map.identity
        if correct and attempt.skips < MAX_SKIPS:
            kind = MessageKind.FIRST_TRY if attempt.skips == 0 else MessageKind.WON
            _close(session, attempt, AttemptStatus.WON, kind)
        elif attempt.skips >= MAX_SKIPS:
            _close(session, attempt, AttemptStatus.LOST, MessageKind.LOSE)
        else:
            attempt.skips += 1
            _append_detail(attempt, {
                "status": DetailStatus.FAIL.value,
                "text": guess.display_name,
                "mapId": guess.id,
                "date": int(now.timestamp()),
            })

    return _transition(engine, cfg, member_id, mutate, today=today, now=now, gateway=gateway)


# ---------------------------------------------------------------------------
# Play & hint
# ---------------------------------------------------------------------------
def play(
    engine: Engine,
    cfg: RankedleConfig,
    member_id: int,
    *,
    today: date,
    now: datetime | None = None,
) -> Path:
    """Start the attempt if needed and return the clip the member may hear.

    Clip index is ``min(skips, 5)`` while in progress; finished attempts
    get the full 30 second preview.
    """
    now = now or _utcnow()
    try:
        with get_session(engine) as session:
            puzzle = require_puzzle(session, today)
            attempt = get_attempt(session, puzzle.id, member_id)
            if attempt is None:
                attempt = _new_attempt(puzzle, member_id, now)
                session.add(attempt)
                session.flush()
    except IntegrityError:
        attempt = _reread(engine, member_id, today)

    if attempt is not None and attempt.is_terminal:
        clip = FULL_PREVIEW_FILE
    else:
        clip = preview_file(min(attempt.skips if attempt else 0, HINT_SKIPS))
    return Path(cfg.assets_dir) / str(puzzle.id) / clip


def hint(
    engine: Engine,
    toolchain: MediaToolchain,
    member_id: int,
    *,
    today: date,
) -> str:
    """Blurred cover (base64 WebP), only with exactly one step left."""
    try:
        with get_session(engine) as session:
            puzzle = require_puzzle(session, today)
            attempt = get_attempt(session, puzzle.id, member_id)
            if attempt is None or attempt.skips != HINT_SKIPS:
                raise ForbiddenError()
            if not attempt.hint:
                attempt.hint = True
            cover_url = puzzle.map.cover_url
    except StaleDataError:
        # the concurrent writer set the flag too
        with get_session(engine) as session:
            cover_url = require_puzzle(session, today).map.cover_url

    if not cover_url:
        raise NotFoundError("Puzzle map has no cover")
    return toolchain.blur_cover(cover_url)


# ---------------------------------------------------------------------------
# Read views
# ---------------------------------------------------------------------------
def _result_payload(session: Session, puzzle: Puzzle, attempt: Attempt) -> dict:
    rmap = puzzle.map
    if rmap is None:
        raise NotFoundError(f"Map of puzzle {puzzle.id} not found")
    won = bool(attempt.success)
    return {
        "won": won,
        "skips": attempt.skips,
        "score": scoring.score_glyphs(attempt.details, attempt.skips, attempt.success),
        "points": scoring.points_for(attempt.skips) if won else 0,
        "map": {
            "id": rmap.map_key,
            "cover": rmap.cover_url,
            "songName": rmap.display_name,
            "levelAuthorName": rmap.level_author_name,
        },
        "message": get_message(session, attempt.message_id),
    }


def result(engine: Engine, member_id: int, *, today: date) -> dict | None:
    """Completion screen for a finished attempt, ``None`` while in progress."""
    with get_session(engine) as session:
        puzzle = require_puzzle(session, today)
        attempt = get_attempt(session, puzzle.id, member_id)
        if attempt is None or not attempt.is_terminal:
            return None
        return _result_payload(session, puzzle, attempt)


def daily_state(engine: Engine, member_id: int, *, today: date) -> dict:
    """What the game page needs on load; ``puzzleId`` is None without a puzzle."""
    with get_session(engine) as session:
        puzzle = current_puzzle(session, today)
        if puzzle is None:
            return {"puzzleId": None, "attempt": None, "result": None}

        attempt = get_attempt(session, puzzle.id, member_id)
        state: dict = {"puzzleId": puzzle.id, "attempt": None, "result": None}
        if attempt is not None:
            state["attempt"] = {
                "skips": attempt.skips,
                "details": attempt.details or [],
                "hint": attempt.hint,
                "status": attempt.status,
                "success": attempt.success,
            }
            if attempt.is_terminal:
                state["result"] = _result_payload(session, puzzle, attempt)
        return state


def share_text(
    engine: Engine, cfg: RankedleConfig, member_id: int, *, today: date
) -> str | None:
    with get_session(engine) as session:
        puzzle = require_puzzle(session, today)
        attempt = get_attempt(session, puzzle.id, member_id)
        if attempt is None or not attempt.is_terminal:
            return None
        glyphs = scoring.score_glyphs(attempt.details, attempt.skips, attempt.success)
        return scoring.share_text(puzzle.id, glyphs, cfg.share_url)
