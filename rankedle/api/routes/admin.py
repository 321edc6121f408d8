"""
rankedle.api.routes.admin — Admin endpoints (JWT‑protected)
===========================================================
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from rankedle.api.deps import Service, get_current_admin
from rankedle.database.engine import run_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/rankedle", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class GenerateRequest(BaseModel):
    map_id: int | None = None
    activate: bool = True


class MapImport(BaseModel):
    maps: list[dict[str, Any]] = Field(default_factory=list)


class MapExclude(BaseModel):
    map_key: str


# ---------------------------------------------------------------------------
# Puzzles
# ---------------------------------------------------------------------------
@router.get("/puzzles")
def list_puzzles(service: Service, admin: dict = Depends(get_current_admin)):
    return {
        "puzzles": [
            {
                "id": p.id,
                "seasonId": p.season_id,
                "mapId": p.map_id,
                "date": p.date.isoformat() if p.date else None,
            }
            for p in service.list_puzzles()
        ]
    }


@router.post("/generate", status_code=201)
async def generate(
    body: GenerateRequest,
    service: Service,
    admin: dict = Depends(get_current_admin),
):
    """Run the asset pipeline now (optionally on a chosen map)."""
    logger.info("Manual generation requested by %s (map=%s)", admin.get("sub"), body.map_id)
    puzzle = await run_db(service.generate_puzzle, body.map_id)
    if puzzle is None:
        raise HTTPException(500, "Generation failed, see logs")
    if body.activate:
        await run_db(service.activate_puzzle)
    return {"id": puzzle.id, "mapId": puzzle.map_id}


@router.post("/finish")
def finish(service: Service, admin: dict = Depends(get_current_admin)):
    """Close out every puzzle from a previous day."""
    return {"processed": service.finish()}


# ---------------------------------------------------------------------------
# Map catalog
# ---------------------------------------------------------------------------
@router.post("/maps/import")
def import_maps(body: MapImport, service: Service, admin: dict = Depends(get_current_admin)):
    return service.import_maps(body.maps)


@router.post("/maps/exclude")
def exclude_map(body: MapExclude, service: Service, admin: dict = Depends(get_current_admin)):
    if not service.exclude_map(body.map_key):
        raise HTTPException(409, "Map already excluded")
    return {"map_key": body.map_key, "excluded": True}
