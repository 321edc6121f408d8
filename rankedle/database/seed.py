"""
rankedle.database.seed — First Season Seeder
=============================================

Seasons are managed by admins, but the puzzle generator needs at least one
to attach puzzles to.  On first startup a 100-day season starting today is
inserted; once any season exists the seeder does nothing.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from rankedle.database.models import Season

logger = logging.getLogger(__name__)

FIRST_SEASON_DAYS = 100


def seed_first_season(engine: Engine, now: datetime | None = None) -> Season | None:
    """Insert "Saison 1" when the seasons table is empty.

    Returns the created season, or ``None`` if seasons already exist.
    """
    session = Session(engine, expire_on_commit=False)
    try:
        count = session.scalar(select(func.count()).select_from(Season)) or 0
        if count:
            return None

        start = (now or datetime.now(UTC)).replace(hour=0, minute=0, second=0, microsecond=0)
        season = Season(
            name="Saison 1",
            starts_at=start,
            ends_at=start + timedelta(days=FIRST_SEASON_DAYS),
        )
        session.add(season)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    logger.info("Seeded first season (%s → %s).", season.starts_at, season.ends_at)
    return season
