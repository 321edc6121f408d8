"""
rankedle.services.generation_service — Daily Puzzle Generation
===============================================================

Builds tomorrow's puzzle from a random unused ranked map::

    finish(today)                 close every puzzle dated before today
      ↓
    pick_candidate_map()          random map with no puzzle, not excluded
      ↓
    download → extract .egg → trim silence → song.mp3
      ↓
    random 30 s window → preview_full.mp3 → preview_0..5.mp3
      ↓
    PCM peaks → waveform.json
      ↓
    INSERT rankedles, move staging dir → <assets_dir>/<puzzle_id>/

Artifacts are built in a staging directory next to the final location, so
no Puzzle row ever points at a partial artifact set.  Every failure is
logged and swallowed: the process hosting the daily task must survive a
bad map.
"""

from __future__ import annotations

import json
import logging
import math
import random
import shutil
import tempfile
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING

import httpx
from sqlalchemy import Engine, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rankedle.constants import (
    CLIP_RANGES,
    FULL_PREVIEW_FILE,
    FULL_PREVIEW_SECONDS,
    PACKAGED_AUDIO_SUFFIX,
    SONG_FILE,
    WAVEFORM_FILE,
    preview_file,
)
from rankedle.database.engine import get_session
from rankedle.database.models import ExcludedMap, Puzzle, RankedleMap
from rankedle.errors import DownloadError, NoCandidateMapError, NotFoundError, RankedleError
from rankedle.services import puzzle_service, stats_service

if TYPE_CHECKING:
    from rankedle.services.media_service import MediaToolchain

logger = logging.getLogger(__name__)

STAGING_PREFIX = ".staging-"


# ---------------------------------------------------------------------------
# Map selection
# ---------------------------------------------------------------------------
def pick_candidate_map(session: Session, map_id: int | None = None) -> RankedleMap:
    """A uniformly random map that no puzzle uses yet.

    Excluded catalog keys are skipped for random picks; an explicit
    *map_id* only has to be unused.
    """
    stmt = select(RankedleMap).where(RankedleMap.id.not_in(select(Puzzle.map_id)))
    if map_id is not None:
        stmt = stmt.where(RankedleMap.id == map_id)
    else:
        stmt = stmt.where(RankedleMap.map_key.not_in(select(ExcludedMap.map_key)))

    rmap = session.scalar(stmt.order_by(func.random()).limit(1))
    if rmap is None:
        raise NoCandidateMapError(
            f"Map {map_id} is unknown or already used" if map_id is not None
            else "No unused map left in the pool"
        )
    return rmap


# ---------------------------------------------------------------------------
# Artifacts
# ---------------------------------------------------------------------------
def window_start(duration: int, rng: random.Random | None = None) -> int:
    """Random start of the full preview window (0 for short songs)."""
    if duration < FULL_PREVIEW_SECONDS:
        return 0
    return round((rng or random).random() * (duration - FULL_PREVIEW_SECONDS))


def build_artifacts(
    toolchain: MediaToolchain,
    download_url: str | None,
    workdir: Path,
    rng: random.Random | None = None,
) -> None:
    """Run the media pipeline into *workdir*; each stage reads the previous
    stage's file."""
    if not download_url:
        raise DownloadError("Map has no download URL")

    archive = toolchain.download_archive(download_url)
    packaged = workdir / f"song{PACKAGED_AUDIO_SUFFIX}"
    packaged.write_bytes(toolchain.extract_single_entry(archive, PACKAGED_AUDIO_SUFFIX))

    song = workdir / SONG_FILE
    toolchain.trim_silence(packaged, song)
    packaged.unlink()

    duration = math.floor(toolchain.probe_duration(song))
    start = window_start(duration, rng)
    full = workdir / FULL_PREVIEW_FILE
    toolchain.cut_clip(song, full, start, FULL_PREVIEW_SECONDS)

    for clip, length in enumerate(CLIP_RANGES):
        toolchain.cut_clip(full, workdir / preview_file(clip), 0, length)

    samples = toolchain.extract_waveform_samples(full)
    (workdir / WAVEFORM_FILE).write_text(json.dumps(samples), encoding="utf-8")
    logger.debug("Artifacts built in %s (duration=%ds, start=%ds)", workdir, duration, start)


def _move_into_place(staging: Path, target: Path) -> None:
    if target.exists():
        shutil.rmtree(target)
    staging.rename(target)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def generate_puzzle(
    engine: Engine,
    toolchain: MediaToolchain,
    assets_dir: str | Path,
    *,
    today: date | None = None,
    map_id: int | None = None,
    rng: random.Random | None = None,
) -> Puzzle | None:
    """Generate a new, undated puzzle.

    With *today*, every puzzle dated before it is finished first; today's
    live puzzle keeps running, so an admin can generate during the day.

    Returns the new puzzle, or ``None`` if any stage failed.
    """
    try:
        if today is not None:
            puzzle_service.finish(engine, today)
        return _generate(engine, toolchain, Path(assets_dir), map_id, rng)
    except (RankedleError, OSError, httpx.HTTPError, SQLAlchemyError) as exc:
        logger.error("Unable to generate a rankedle (%s)", exc, exc_info=True)
        return None


def _generate(
    engine: Engine,
    toolchain: MediaToolchain,
    assets_root: Path,
    map_id: int | None,
    rng: random.Random | None,
) -> Puzzle:
    with get_session(engine) as session:
        rmap = pick_candidate_map(session, map_id)
        season = stats_service.current_season(session)
        if season is None:
            raise NotFoundError("No season to attach the puzzle to")
        rmap_id, season_id, download_url = rmap.id, season.id, rmap.download_url

    logger.info("Generating rankedle from map %s (%s)", rmap.map_key, rmap.display_name)

    assets_root.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=assets_root))
    target: Path | None = None
    try:
        build_artifacts(toolchain, download_url, staging, rng)
        with get_session(engine) as session:
            puzzle = Puzzle(season_id=season_id, map_id=rmap_id)
            session.add(puzzle)
            session.flush()
            target = assets_root / str(puzzle.id)
            _move_into_place(staging, target)
    except Exception:
        if target is not None:
            shutil.rmtree(target, ignore_errors=True)
        raise
    finally:
        shutil.rmtree(staging, ignore_errors=True)

    logger.info("Rankedle %d generated (map %s)", puzzle.id, rmap.map_key)
    return puzzle


def activate_puzzle(engine: Engine, today: date) -> Puzzle | None:
    """Give *today* to the oldest undated puzzle unless a puzzle already has it.

    Returns the puzzle dated today, or ``None`` when nothing is available.
    """
    with get_session(engine) as session:
        existing = puzzle_service.current_puzzle(session, today)
        if existing is not None:
            return existing

        pending = session.scalar(
            select(Puzzle).where(Puzzle.date.is_(None)).order_by(Puzzle.id).limit(1)
        )
        if pending is None:
            logger.warning("No undated puzzle available for %s", today)
            return None
        pending.date = today
        session.flush()
        logger.info("Puzzle %d activated for %s", pending.id, today)
        return pending
