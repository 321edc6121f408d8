"""
tests/test_generation_service.py — Daily Puzzle Generation
===========================================================
Runs the asset pipeline against ``FakeToolchain`` (marker files instead of
ffmpeg) and checks the all-or-nothing contract: either a Puzzle row and a
complete artifact directory exist, or neither does.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from conftest import NOW, PLAYER, TODAY, TOMORROW, FakeToolchain
from rankedle.constants import CLIP_RANGES
from rankedle.database.models import Attempt, AttemptStatus, Puzzle, RankedleMap, SeasonStat
from rankedle.errors import NoActivePuzzleError, NoCandidateMapError, NotFoundError
from rankedle.services import generation_service, map_service

EXPECTED_FILES = {
    "song.mp3",
    "preview_full.mp3",
    *(f"preview_{i}.mp3" for i in range(6)),
    "waveform.json",
}


class FixedRandom:
    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


def _attempt_on(engine, puzzle_id: int) -> Attempt:
    with Session(engine) as session:
        return session.scalar(select(Attempt).where(Attempt.puzzle_id == puzzle_id))


def _stats(engine, member_id: int = PLAYER) -> SeasonStat:
    with Session(engine) as session:
        return session.scalar(select(SeasonStat).where(SeasonStat.member_id == member_id))


def _puzzle_count(engine) -> int:
    with Session(engine) as session:
        return session.scalar(select(func.count(Puzzle.id)))


@pytest.fixture
def pool(seed):
    season_id = seed.season()
    map_id = seed.map("1a2b", "Camellia", "Ghost")
    return season_id, map_id


# ===========================================================================
# Window & selection
# ===========================================================================
class TestWindowStart:
    def test_short_song_starts_at_zero(self):
        assert generation_service.window_start(29, FixedRandom(0.9)) == 0

    def test_window_stays_inside_song(self):
        assert generation_service.window_start(95, FixedRandom(0.0)) == 0
        assert generation_service.window_start(95, FixedRandom(1.0)) == 65

    def test_exactly_thirty_seconds(self):
        assert generation_service.window_start(30, FixedRandom(0.7)) == 0


class TestPickCandidate:
    def test_used_maps_are_skipped(self, db_session, game):
        picked = {generation_service.pick_candidate_map(db_session).id for _ in range(20)}
        assert game.answer not in picked
        assert picked <= {game.twin, game.decoy, game.other}

    def test_excluded_keys_are_skipped(self, db_session, db_engine, game):
        for key in ("9f9f", "3c4d"):
            map_service.exclude_map(db_engine, key)
        assert generation_service.pick_candidate_map(db_session).id == game.other

    def test_explicit_map_ignores_exclusions(self, db_session, db_engine, game):
        map_service.exclude_map(db_engine, "3c4d")
        assert generation_service.pick_candidate_map(db_session, game.decoy).id == game.decoy

    def test_explicit_map_must_be_unused(self, db_session, game):
        with pytest.raises(NoCandidateMapError):
            generation_service.pick_candidate_map(db_session, game.answer)

    def test_pool_exhausted(self, db_session, seed):
        season_id = seed.season()
        seed.puzzle(seed.map("1a2b", "Camellia", "Ghost"), TODAY, season_id)
        with pytest.raises(NoCandidateMapError):
            generation_service.pick_candidate_map(db_session)


# ===========================================================================
# generate_puzzle — success
# ===========================================================================
class TestGenerate:
    def test_builds_artifacts_under_puzzle_id(self, db_engine, toolchain, tmp_path, pool):
        season_id, map_id = pool
        assets = tmp_path / "assets"

        puzzle = generation_service.generate_puzzle(
            db_engine, toolchain, assets, rng=FixedRandom(0.5)
        )

        assert puzzle is not None
        assert puzzle.map_id == map_id
        assert puzzle.season_id == season_id
        assert puzzle.date is None
        assert {p.name for p in (assets / str(puzzle.id)).iterdir()} == EXPECTED_FILES
        assert [p.name for p in assets.iterdir()] == [str(puzzle.id)]
        assert toolchain.downloads == ["https://cdn.example/1a2b.zip"]

    def test_clip_cuts(self, db_engine, toolchain, tmp_path, pool):
        generation_service.generate_puzzle(
            db_engine, toolchain, tmp_path, rng=FixedRandom(1.0)
        )
        # 95.7 s probed -> 95 s, window starts at 95 - 30
        assert toolchain.cuts[0] == ("song.mp3", "preview_full.mp3", 65, 30)
        assert toolchain.cuts[1:] == [
            ("preview_full.mp3", f"preview_{i}.mp3", 0, length)
            for i, length in enumerate(CLIP_RANGES)
        ]

    def test_song_is_trimmed_packaged_audio(self, db_engine, toolchain, tmp_path, pool):
        puzzle = generation_service.generate_puzzle(db_engine, toolchain, tmp_path)
        song = (tmp_path / str(puzzle.id) / "song.mp3").read_bytes()
        assert song == b"trimmed:OggS fake vorbis payload"

    def test_waveform_samples_written(self, db_engine, tmp_path, pool):
        toolchain = FakeToolchain(samples=[1, 5, 3])
        puzzle = generation_service.generate_puzzle(db_engine, toolchain, tmp_path)
        waveform = (tmp_path / str(puzzle.id) / "waveform.json").read_text(encoding="utf-8")
        assert json.loads(waveform) == [1, 5, 3]

    def test_finishes_previous_days_first(self, db_engine, toolchain, tmp_path, game, seed):
        attempt_id = seed.attempt(game.puzzle_id, PLAYER, skips=2, date_start=NOW)

        puzzle = generation_service.generate_puzzle(db_engine, toolchain, tmp_path, today=TOMORROW)
        assert puzzle is not None
        with Session(db_engine) as session:
            attempt = session.get(Attempt, attempt_id)
            assert attempt.status == AttemptStatus.LOST
            assert attempt.date_end is not None

    def test_midday_generation_leaves_todays_puzzle_open(
        self, db_engine, toolchain, tmp_path, game, seed
    ):
        attempt_id = seed.attempt(game.puzzle_id, PLAYER, skips=2, date_start=NOW)

        assert generation_service.generate_puzzle(db_engine, toolchain, tmp_path, today=TODAY)
        with Session(db_engine) as session:
            attempt = session.get(Attempt, attempt_id)
            assert attempt.status == AttemptStatus.IN_PROGRESS
            assert attempt.date_end is None

    def test_explicit_map(self, db_engine, toolchain, tmp_path, game):
        puzzle = generation_service.generate_puzzle(
            db_engine, toolchain, tmp_path, map_id=game.other
        )
        assert puzzle.map_id == game.other
        assert toolchain.downloads == ["https://cdn.example/5e6f.zip"]


# ===========================================================================
# generate_puzzle — failures leave nothing behind
# ===========================================================================
class TestGenerateFailures:
    @pytest.mark.parametrize("stage", ["download", "trim", "probe", "cut", "waveform"])
    def test_stage_failure(self, db_engine, tmp_path, pool, stage):
        toolchain = FakeToolchain(fail_on=stage)

        assert generation_service.generate_puzzle(db_engine, toolchain, tmp_path) is None
        assert _puzzle_count(db_engine) == 0
        assert list(tmp_path.iterdir()) == []

    def test_archive_without_packaged_audio(self, db_engine, tmp_path, pool):
        toolchain = FakeToolchain(archive_entries={"Info.dat": b"{}", "cover.jpg": b""})
        assert generation_service.generate_puzzle(db_engine, toolchain, tmp_path) is None
        assert _puzzle_count(db_engine) == 0
        assert list(tmp_path.iterdir()) == []

    def test_pool_exhausted(self, db_engine, toolchain, tmp_path, seed):
        season_id = seed.season()
        seed.puzzle(seed.map("1a2b", "Camellia", "Ghost"), TODAY, season_id)

        assert generation_service.generate_puzzle(db_engine, toolchain, tmp_path) is None
        assert _puzzle_count(db_engine) == 1
        assert toolchain.downloads == []

    def test_no_season(self, db_engine, toolchain, tmp_path, seed):
        seed.map("1a2b", "Camellia", "Ghost")
        assert generation_service.generate_puzzle(db_engine, toolchain, tmp_path) is None
        assert toolchain.downloads == []

    def test_missing_download_url(self, db_engine, toolchain, tmp_path, seed):
        seed.season()
        with Session(db_engine) as session:
            session.add(RankedleMap(
                map_key="dead", song_name="Ghost", song_author_name="Camellia",
                versions=[{"coverURL": "https://cdn.example/dead.jpg"}],
            ))
            session.commit()

        assert generation_service.generate_puzzle(db_engine, toolchain, tmp_path) is None
        assert _puzzle_count(db_engine) == 0


# ===========================================================================
# activate_puzzle & the daily rollover
# ===========================================================================
class TestActivate:
    def test_dates_oldest_undated_puzzle(self, db_engine, seed):
        season_id = seed.season()
        first = seed.puzzle(seed.map("a", "A", "One"), None, season_id)
        seed.puzzle(seed.map("b", "B", "Two"), None, season_id)

        puzzle = generation_service.activate_puzzle(db_engine, TODAY)
        assert puzzle.id == first
        assert puzzle.date == TODAY

    def test_keeps_existing_puzzle_for_today(self, db_engine, game, seed):
        pending = seed.puzzle(game.other, None, game.season_id)

        assert generation_service.activate_puzzle(db_engine, TODAY).id == game.puzzle_id
        with Session(db_engine) as session:
            assert session.get(Puzzle, pending).date is None

    def test_nothing_to_activate(self, db_engine, seed):
        seed.season()
        assert generation_service.activate_puzzle(db_engine, TODAY) is None


class TestDailyRollover:
    def test_run_daily_generates_and_activates(self, service, pool, cfg):
        puzzle = service.run_daily()
        assert puzzle is not None
        assert puzzle.date == TODAY
        assert service.current_puzzle().id == puzzle.id
        assert (Path(cfg.assets_dir) / str(puzzle.id) / "preview_0.mp3").exists()

    def test_run_daily_falls_back_to_backlog(self, service, seed, toolchain):
        season_id = seed.season()
        backlog = seed.puzzle(seed.map("a", "A", "One"), None, season_id)
        toolchain.fail_on = "download"

        assert service.run_daily().id == backlog

    def test_rollover_closes_live_puzzle_behind_a_backlog(self, service, game, clock):
        assert service.generate_puzzle() is not None
        assert service.activate_puzzle().id == game.puzzle_id
        service.skip(PLAYER)
        service.skip(PLAYER)

        clock.advance(days=1)
        rolled = service.run_daily()
        assert rolled.date == TOMORROW
        assert rolled.id != game.puzzle_id

        attempt = _attempt_on(service.engine, game.puzzle_id)
        assert attempt.status == AttemptStatus.LOST
        assert attempt.date_end is not None
        assert (_stats(service.engine).played, _stats(service.engine).won) == (1, 0)

        clock.advance(days=1)
        service.run_daily()
        assert _stats(service.engine).played == 1

    def test_midday_generation_does_not_cost_a_win(self, service, game):
        service.play(PLAYER)
        assert service.generate_puzzle() is not None
        assert service.activate_puzzle().id == game.puzzle_id

        attempt = service.submit(PLAYER, game.answer)
        assert attempt.status == AttemptStatus.WON
        stats = _stats(service.engine)
        assert (stats.played, stats.won, stats.points) == (1, 1, 8)

    def test_waveform_of_todays_puzzle(self, service, pool):
        service.run_daily()
        png = service.waveform("progress", bar_count=10, bar_width=2, gap=1)
        assert png.startswith(b"\x89PNG")

    def test_waveform_without_puzzle(self, service, pool):
        with pytest.raises(NoActivePuzzleError):
            service.waveform()

    def test_waveform_file_missing(self, service, game):
        with pytest.raises(NotFoundError):
            service.waveform()
