"""
rankedle.services.stats_service — Season Stats, Ranking & Summary
==================================================================

Folds finished attempts into per-season stats and builds the ranked views.

The fold is guarded by a conditional UPDATE on ``rankedle_scores.date_end``
(``... WHERE id = :id AND date_end IS NULL``): only the caller whose UPDATE
touches the row goes on to change the stats, so re-processing an attempt
(``finish()`` twice, two racing requests) can never double count.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import Engine, Integer, cast, func, select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from rankedle.constants import MAX_SKIPS
from rankedle.database.engine import get_session
from rankedle.database.models import Attempt, AttemptStatus, Puzzle, Season, SeasonStat
from rankedle.engine.scoring import dense_rank, points_for

if TYPE_CHECKING:
    from rankedle.services.guild_service import GuildGateway, GuildMember

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
def current_season(session: Session) -> Season | None:
    """The season with the highest id."""
    return session.scalar(select(Season).order_by(Season.id.desc()).limit(1))


def get_or_create_stats(session: Session, season_id: int, member_id: int) -> SeasonStat:
    """Fetch or create the SeasonStat row for season+member."""
    stats = session.scalar(
        select(SeasonStat).where(
            SeasonStat.season_id == season_id, SeasonStat.member_id == member_id
        )
    )
    if stats is None:
        stats = SeasonStat(
            season_id=season_id,
            member_id=member_id,
            try1=0, try2=0, try3=0, try4=0, try5=0, try6=0,
            played=0, won=0, current_streak=0, max_streak=0, points=0,
        )
        session.add(stats)
        session.flush()
    return stats


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------
def update_player_stats(
    session: Session,
    puzzle: Puzzle,
    attempt: Attempt,
    now: datetime | None = None,
) -> SeasonStat | None:
    """Fold *attempt* into the member's stats for the puzzle's season.

    Sets ``date_end`` and updates the stats exactly once per attempt.
    Returns the updated stats row, or ``None`` if the attempt had already
    been processed.  Errors propagate: stats must never be left half
    written.
    """
    now = now or datetime.now(UTC)
    session.flush()

    gate = session.execute(
        update(Attempt)
        .where(Attempt.id == attempt.id, Attempt.date_end.is_(None))
        .values(date_end=now)
        .execution_options(synchronize_session=False)
    )
    if gate.rowcount != 1:
        logger.debug("Attempt %d already folded into stats", attempt.id)
        return None
    set_committed_value(attempt, "date_end", now)

    stats = get_or_create_stats(session, puzzle.season_id, attempt.member_id)
    stats.played += 1
    if attempt.status == AttemptStatus.WON and attempt.skips < MAX_SKIPS:
        counter = f"try{attempt.skips + 1}"
        setattr(stats, counter, getattr(stats, counter) + 1)
        stats.won += 1
        stats.current_streak += 1
        stats.max_streak = max(stats.max_streak, stats.current_streak)
        stats.points += points_for(attempt.skips)
    else:
        stats.current_streak = 0

    session.flush()
    logger.info(
        "Stats updated: member=%d season=%d status=%s skips=%d points=%d",
        attempt.member_id, puzzle.season_id, attempt.status, attempt.skips, stats.points,
    )
    return stats


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------
def _player(member: GuildMember) -> dict[str, str]:
    return {"name": member.display_name, "avatar": member.avatar_url}


def player_stats(engine: Engine, member_id: int) -> dict | None:
    """The member's stats row for the current season."""
    with get_session(engine) as session:
        season = current_season(session)
        if season is None:
            return None
        stats = session.scalar(
            select(SeasonStat).where(
                SeasonStat.season_id == season.id, SeasonStat.member_id == member_id
            )
        )
        if stats is None:
            return None
        return {"seasonId": season.id, "memberId": str(member_id),
                "points": stats.points, **stats.to_dict()}


def ranking(engine: Engine, guild: GuildGateway) -> list[dict]:
    """Current-season ranking by points, dense ranked.

    Members who left the guild are dropped before ranks are assigned.
    """
    with get_session(engine) as session:
        season = current_season(session)
        if season is None:
            return []
        rows = session.scalars(
            select(SeasonStat)
            .where(SeasonStat.season_id == season.id)
            .order_by(SeasonStat.points.desc(), SeasonStat.id)
        ).all()

    visible: list[tuple[SeasonStat, GuildMember]] = []
    for row in rows:
        member = guild.get_member(row.member_id)
        if member is not None:
            visible.append((row, member))

    return [
        {
            "memberId": str(row.member_id),
            "name": member.display_name,
            "avatar": member.avatar_url,
            "points": row.points,
            "rank": rank,
            "stats": row.to_dict(),
        }
        for rank, (row, member) in dense_rank(visible, key=lambda pair: pair[0].points)
    ]


def _highlight(
    rows: list[dict], metric: Callable[[dict], int]
) -> dict[str, Any] | None:
    """Row with the highest *metric*, or ``None`` if nobody scored."""
    if not rows:
        return None
    best = max(rows, key=metric)
    count = metric(best)
    return {"player": best["player"], "count": count} if count > 0 else None


def summary(engine: Engine, guild: GuildGateway) -> dict:
    """All-time ranking plus highlights of the previous season."""
    with get_session(engine) as session:
        totals = session.execute(
            select(SeasonStat.member_id, func.sum(SeasonStat.points).label("points"))
            .group_by(SeasonStat.member_id)
            .order_by(func.sum(SeasonStat.points).desc(), SeasonStat.member_id)
        ).all()

        season_ids = session.scalars(select(Season.id).order_by(Season.id)).all()
        prev_season_id = season_ids[-2] if len(season_ids) > 1 else None

        season_stats: list[SeasonStat] = []
        season_scores: list[Any] = []
        if prev_season_id is not None:
            season_stats = list(session.scalars(
                select(SeasonStat).where(SeasonStat.season_id == prev_season_id)
            ).all())
            season_scores = list(session.execute(
                select(
                    Attempt.member_id,
                    func.sum(Attempt.skips).label("total_skips"),
                    func.sum(cast(Attempt.hint, Integer)).label("total_hints"),
                )
                .join(Puzzle, Puzzle.id == Attempt.puzzle_id)
                .where(Puzzle.season_id == prev_season_id)
                .group_by(Attempt.member_id)
            ).all())

    global_rows = []
    for member_id, points in totals:
        member = guild.get_member(member_id)
        if member is not None:
            global_rows.append({"player": _player(member), "points": int(points or 0)})
    global_ranking = [
        {**row, "rank": rank}
        for rank, row in dense_rank(global_rows, key=lambda r: r["points"])
    ]

    season = None
    if season_stats:
        stat_rows = []
        for stat in season_stats:
            member = guild.get_member(stat.member_id)
            if member is None:
                continue
            stat_rows.append({
                "player": _player(member),
                "points": stat.points,
                "maxStreak": stat.max_streak,
                "played": stat.played,
                "try1": stat.try1,
                "won": stat.won,
            })
        score_rows = []
        for member_id, total_skips, total_hints in season_scores:
            member = guild.get_member(member_id)
            if member is None:
                continue
            score_rows.append({
                "player": _player(member),
                "skips": int(total_skips or 0),
                "hints": int(total_hints or 0),
            })
        season = {
            "id": prev_season_id,
            "top1": _highlight(stat_rows, lambda r: r["points"]),
            "maxStreak": _highlight(stat_rows, lambda r: r["maxStreak"]),
            "played": _highlight(stat_rows, lambda r: r["played"]),
            "firstTry": _highlight(stat_rows, lambda r: r["try1"]),
            "wins": _highlight(stat_rows, lambda r: r["won"]),
            "loses": _highlight(stat_rows, lambda r: r["played"] - r["won"]),
            "skips": _highlight(score_rows, lambda r: r["skips"]),
            "hints": _highlight(score_rows, lambda r: r["hints"]),
        }

    return {"global": {"ranking": global_ranking}, "season": season}
