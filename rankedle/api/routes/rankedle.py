"""
rankedle.api.routes.rankedle — Player endpoints
================================================

All routes act on the caller's own attempt (JWT ``sub``); ``/history``
also browses another member's past puzzles.  Game errors
are translated to HTTP statuses by the handlers in
:mod:`rankedle.api.main`.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import FileResponse, Response
from pydantic import BaseModel

from rankedle.api.deps import PlayerId, Service
from rankedle.database.models import Attempt
from rankedle.engine.waveform import (
    DEFAULT_BAR_COUNT,
    DEFAULT_BAR_WIDTH,
    DEFAULT_GAP,
    WaveformMode,
)

router = APIRouter(prefix="/rankedle", tags=["rankedle"])

NO_CACHE_HEADERS = {
    "Cache-Control": "max-age=0, no-cache, no-store, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


# ---------------------------------------------------------------------------
# Schemas & helpers
# ---------------------------------------------------------------------------
class GuessBody(BaseModel):
    id: int


def _attempt_dict(attempt: Attempt | None) -> dict | None:
    if attempt is None:
        return None
    return {
        "puzzleId": attempt.puzzle_id,
        "skips": attempt.skips,
        "details": attempt.details or [],
        "hint": attempt.hint,
        "status": attempt.status,
        "success": attempt.success,
    }


# ---------------------------------------------------------------------------
# Puzzle & state
# ---------------------------------------------------------------------------
@router.get("/current")
def get_current(service: Service):
    puzzle = service.current_puzzle()
    if puzzle is None:
        return {"puzzle": None}
    return {"puzzle": {"id": puzzle.id, "seasonId": puzzle.season_id, "date": puzzle.date.isoformat()}}


@router.get("/state")
def get_state(player: PlayerId, service: Service):
    return service.daily_state(player)


# ---------------------------------------------------------------------------
# Game actions
# ---------------------------------------------------------------------------
@router.get("/play")
def play(player: PlayerId, service: Service):
    """Stream the clip the player is currently allowed to hear."""
    path = service.play(player)
    if not path.exists():
        raise HTTPException(404, "Preview not available")
    return FileResponse(
        path,
        media_type="audio/mpeg",
        headers={**NO_CACHE_HEADERS, "ETag": path.name},
    )


@router.post("/skip")
def skip(player: PlayerId, service: Service):
    return _attempt_dict(service.skip(player))


@router.post("/submit")
def submit(body: GuessBody, player: PlayerId, service: Service):
    return _attempt_dict(service.submit(player, body.id))


@router.post("/hint")
def hint(player: PlayerId, service: Service):
    return {"cover": service.hint(player)}


@router.get("/result")
def result(player: PlayerId, service: Service):
    return {"result": service.result(player)}


@router.get("/share")
def share(player: PlayerId, service: Service):
    return {"text": service.share_text(player)}


@router.get("/waveform")
def waveform(
    service: Service,
    mode: WaveformMode = WaveformMode.LOCKED,
    bar_count: int = Query(DEFAULT_BAR_COUNT, alias="barCount", ge=1, le=1000),
    bar_width: int = Query(DEFAULT_BAR_WIDTH, alias="barWidth", ge=1, le=64),
    gap: int = Query(DEFAULT_GAP, ge=0, le=64),
):
    png = service.waveform(mode, bar_count=bar_count, bar_width=bar_width, gap=gap)
    return Response(content=png, media_type="image/png", headers=NO_CACHE_HEADERS)


# ---------------------------------------------------------------------------
# Search, history & stats
# ---------------------------------------------------------------------------
@router.get("/songs")
def search_songs(player: PlayerId, service: Service, query: str = Query("", max_length=200)):
    return {"songs": service.search_maps(player, query)}


@router.get("/history")
def history(
    player: PlayerId,
    service: Service,
    page: int = Query(0, ge=0),
    member_id: int | None = Query(None, alias="memberId"),
):
    """The caller's history, or *memberId*'s when given."""
    if member_id is None or member_id == player:
        return service.history(player, page)
    return service.history(member_id, page, viewer_id=player)


@router.get("/ranking")
def ranking(service: Service):
    return {"ranking": service.ranking()}


@router.get("/stats")
def stats(player: PlayerId, service: Service):
    return {"stats": service.player_stats(player)}


@router.get("/summary")
def summary(service: Service):
    return service.summary()
