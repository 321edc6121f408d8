"""
rankedle.services.rankedle_service — Game Facade
=================================================

:class:`RankedleService` bundles the database engine, configuration, media
toolchain, guild gateway and a clock, and exposes every game operation as
a method.  The API and the bot each build one at startup; tests build one
with fakes for the toolchain and the gateway and a frozen clock.

"Today" is the calendar date in the configured timezone, so the puzzle
rolls over at local midnight, not at UTC midnight.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import UTC, date, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import Engine

from rankedle.constants import WAVEFORM_FILE
from rankedle.database.engine import get_session
from rankedle.engine.waveform import (
    DEFAULT_BAR_COUNT,
    DEFAULT_BAR_WIDTH,
    DEFAULT_GAP,
    WaveformMode,
    render_waveform,
)
from rankedle.errors import NoActivePuzzleError, NotFoundError
from rankedle.services import (
    attempt_service,
    generation_service,
    map_service,
    puzzle_service,
    stats_service,
)
from rankedle.services.media_service import MediaToolchain

if TYPE_CHECKING:
    from rankedle.config import RankedleConfig
    from rankedle.database.models import Attempt, Puzzle
    from rankedle.services.guild_service import GuildGateway

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RankedleService:
    """Everything a Rankedle host needs, with its collaborators injected."""

    def __init__(
        self,
        engine: Engine,
        cfg: RankedleConfig,
        *,
        toolchain: MediaToolchain | None = None,
        guild: GuildGateway | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.engine = engine
        self.cfg = cfg
        self.toolchain = toolchain or MediaToolchain(cfg.ffmpeg_path, cfg.ffprobe_path)
        self.guild = guild
        self._clock = clock

    # -------------------------------------------------------------------
    # Clock
    # -------------------------------------------------------------------
    def now(self) -> datetime:
        return self._clock()

    def today(self) -> date:
        return self.now().astimezone(self.cfg.tz).date()

    @property
    def assets_dir(self) -> Path:
        return Path(self.cfg.assets_dir)

    # -------------------------------------------------------------------
    # Puzzles
    # -------------------------------------------------------------------
    def current_puzzle(self) -> Puzzle | None:
        with get_session(self.engine) as session:
            return puzzle_service.current_puzzle(session, self.today())

    def last_puzzle(self) -> Puzzle | None:
        with get_session(self.engine) as session:
            return puzzle_service.last_puzzle(session)

    def list_puzzles(self) -> list[Puzzle]:
        return puzzle_service.list_puzzles(self.engine)

    def history(self, member_id: int, page: int = 0, viewer_id: int | None = None) -> dict:
        return puzzle_service.history(
            self.engine, member_id, page, self.today(), viewer_id=viewer_id
        )

    def search_maps(self, member_id: int, query: str) -> list[dict]:
        return puzzle_service.search_candidate_maps(self.engine, member_id, query, self.today())

    def finish(self) -> int:
        return puzzle_service.finish(self.engine, self.today(), self.now())

    def generate_puzzle(self, map_id: int | None = None) -> Puzzle | None:
        return generation_service.generate_puzzle(
            self.engine, self.toolchain, self.assets_dir, today=self.today(), map_id=map_id
        )

    def activate_puzzle(self) -> Puzzle | None:
        return generation_service.activate_puzzle(self.engine, self.today())

    def run_daily(self) -> Puzzle | None:
        """Daily rollover: generate a new puzzle, then date one for today."""
        generated = self.generate_puzzle()
        if generated is None:
            logger.warning("Daily generation produced no puzzle; activating a backlog one")
        return self.activate_puzzle()

    # -------------------------------------------------------------------
    # Attempts
    # -------------------------------------------------------------------
    def daily_state(self, member_id: int) -> dict:
        return attempt_service.daily_state(self.engine, member_id, today=self.today())

    def play(self, member_id: int) -> Path:
        return attempt_service.play(
            self.engine, self.cfg, member_id, today=self.today(), now=self.now()
        )

    def skip(self, member_id: int) -> Attempt | None:
        return attempt_service.skip(
            self.engine, self.cfg, member_id,
            today=self.today(), now=self.now(), gateway=self.guild,
        )

    def submit(self, member_id: int, map_id: int) -> Attempt | None:
        return attempt_service.submit(
            self.engine, self.cfg, member_id, map_id,
            today=self.today(), now=self.now(), gateway=self.guild,
        )

    def hint(self, member_id: int) -> str:
        return attempt_service.hint(self.engine, self.toolchain, member_id, today=self.today())

    def result(self, member_id: int) -> dict | None:
        return attempt_service.result(self.engine, member_id, today=self.today())

    def share_text(self, member_id: int) -> str | None:
        return attempt_service.share_text(self.engine, self.cfg, member_id, today=self.today())

    def waveform(
        self,
        mode: WaveformMode | str = WaveformMode.LOCKED,
        bar_count: int = DEFAULT_BAR_COUNT,
        bar_width: int = DEFAULT_BAR_WIDTH,
        gap: int = DEFAULT_GAP,
    ) -> bytes:
        """PNG waveform of the current puzzle's full preview."""
        puzzle = self.current_puzzle()
        if puzzle is None:
            raise NoActivePuzzleError()
        path = self.assets_dir / str(puzzle.id) / WAVEFORM_FILE
        if not path.exists():
            raise NotFoundError(f"No waveform for puzzle {puzzle.id}")
        samples = json.loads(path.read_text(encoding="utf-8"))
        return render_waveform(
            samples, mode, bar_count=bar_count, bar_width=bar_width, gap=gap
        )

    # -------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------
    def ranking(self) -> list[dict]:
        if self.guild is None:
            return []
        return stats_service.ranking(self.engine, self.guild)

    def player_stats(self, member_id: int) -> dict | None:
        return stats_service.player_stats(self.engine, member_id)

    def summary(self) -> dict:
        if self.guild is None:
            return {"global": {"ranking": []}, "season": None}
        return stats_service.summary(self.engine, self.guild)

    # -------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------
    def import_maps(self, payloads: list[dict]) -> dict[str, int]:
        return map_service.import_maps(self.engine, payloads)

    def exclude_map(self, map_key: str) -> bool:
        return map_service.exclude_map(self.engine, map_key)
