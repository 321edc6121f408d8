"""
rankedle.services.map_service — Map Catalog Mirror
===================================================

Maps are mirrored from the external catalog (ranked maps only) and never
modified by the game itself.  This module upserts catalog payloads and
manages the exclusion list.

Catalog payload shape::

    {
        "id": "3a5f1",
        "name": "...",
        "metadata": {
            "songName": "...", "songSubName": "...",
            "songAuthorName": "...", "levelAuthorName": "...",
            "duration": 215,
        },
        "versions": [{"downloadURL": "...", "coverURL": "..."}, ...],
    }
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import Engine, select

from rankedle.database.engine import get_session
from rankedle.database.models import ExcludedMap, RankedleMap

logger = logging.getLogger(__name__)


def import_maps(engine: Engine, payloads: Iterable[dict]) -> dict[str, int]:
    """Insert unknown catalog maps; known keys are left untouched.

    Returns ``{"inserted": N, "skipped": M}``.
    """
    inserted = skipped = 0
    with get_session(engine) as session:
        known = set(session.scalars(select(RankedleMap.map_key)).all())
        for payload in payloads:
            key = str(payload["id"])
            versions = payload.get("versions") or []
            if key in known or not versions:
                skipped += 1
                continue
            meta = payload.get("metadata") or {}
            session.add(RankedleMap(
                map_key=key,
                name=payload.get("name", ""),
                song_name=meta.get("songName", ""),
                song_sub_name=meta.get("songSubName", "") or "",
                song_author_name=meta.get("songAuthorName", ""),
                level_author_name=meta.get("levelAuthorName", ""),
                duration=int(meta.get("duration") or 0),
                versions=versions,
            ))
            known.add(key)
            inserted += 1

    if inserted:
        logger.info("Imported %d catalog maps (%d skipped)", inserted, skipped)
    return {"inserted": inserted, "skipped": skipped}


def exclude_map(engine: Engine, map_key: str) -> bool:
    """Add *map_key* to the exclusion list. Returns False if already there."""
    with get_session(engine) as session:
        existing = session.scalar(
            select(ExcludedMap).where(ExcludedMap.map_key == map_key)
        )
        if existing is not None:
            return False
        session.add(ExcludedMap(map_key=map_key))
    logger.info("Map %s excluded from selection", map_key)
    return True
