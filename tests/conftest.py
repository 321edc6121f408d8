"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import io
import os
import zipfile
from datetime import UTC, date, datetime, timedelta
from pathlib import Path
from types import SimpleNamespace

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of rankedle.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from rankedle.config import RankedleConfig  # noqa: E402
from rankedle.database.models import (  # noqa: E402
    Attempt,
    Base,
    FlavorMessage,
    MessageKind,
    Puzzle,
    RankedleMap,
    Season,
)
from rankedle.errors import DownloadError, TranscodeError  # noqa: E402
from rankedle.services.guild_service import GuildMember  # noqa: E402
from rankedle.services.media_service import MediaToolchain  # noqa: E402
from rankedle.services.rankedle_service import RankedleService  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()

# 10:00 UTC is noon in Europe/Paris, well clear of the date boundary
NOW = datetime(2026, 10, 19, 10, 0, tzinfo=UTC)
TODAY = date(2026, 10, 19)
YESTERDAY = date(2026, 10, 18)
TOMORROW = date(2026, 10, 20)

PLAYER = 1001
OTHER_PLAYER = 1002
BANNED = 666
CHANNEL = 777
EVERYONE_ROLE = 1
ADMIN_ROLE = 2


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Rankedle tables.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used by ``run_db``).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------
def make_zip(entries: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buffer.getvalue()


class FakeToolchain(MediaToolchain):
    """Media toolchain that writes marker files instead of running ffmpeg.

    ``fail_on`` names a stage (``download``, ``trim``, ``probe``, ``cut``,
    ``waveform``) that raises the matching pipeline error.
    """

    def __init__(
        self,
        *,
        duration: float = 95.7,
        samples: list[int] | None = None,
        archive_entries: dict[str, bytes] | None = None,
        fail_on: str | None = None,
    ) -> None:
        super().__init__()
        self.duration = duration
        self.samples = samples if samples is not None else [0, 120, 800, 3000, 1200, 40] * 50
        self.archive_entries = archive_entries or {
            "Info.dat": b"{}",
            "song.egg": b"OggS fake vorbis payload",
            "cover.jpg": b"\xff\xd8",
        }
        self.fail_on = fail_on
        self.downloads: list[str] = []
        self.cuts: list[tuple[str, str, float, float]] = []
        self.covers: list[str] = []

    def _stage(self, name: str) -> None:
        if name == self.fail_on:
            error = DownloadError if name == "download" else TranscodeError
            raise error(f"{name} failed")

    def download_archive(self, url: str) -> bytes:
        self._stage("download")
        self.downloads.append(url)
        return make_zip(self.archive_entries)

    def trim_silence(self, source: Path, dest: Path) -> None:
        self._stage("trim")
        dest.write_bytes(b"trimmed:" + source.read_bytes())

    def probe_duration(self, path: Path) -> float:
        self._stage("probe")
        return self.duration

    def cut_clip(self, source: Path, dest: Path, start: float, duration: float) -> None:
        self._stage("cut")
        self.cuts.append((source.name, dest.name, start, duration))
        dest.write_bytes(f"{source.name}@{start}+{duration}".encode())

    def extract_waveform_samples(self, path: Path) -> list[int]:
        self._stage("waveform")
        return list(self.samples)

    def blur_cover(self, url: str) -> str:
        self.covers.append(url)
        return "ZmFrZS1ibHVycmVkLWNvdmVy"


class FrozenClock:
    """Clock injected into the service; tests move it across midnight."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


class FakeGateway:
    """In-memory guild: a member dict plus a log of channel overwrite pushes."""

    def __init__(self) -> None:
        self.members: dict[int, GuildMember] = {}
        self.overwrites: list[tuple[int, list[dict]]] = []
        self.fail = False

    def add(self, member_id: int, name: str) -> None:
        self.members[member_id] = GuildMember(
            id=member_id,
            display_name=name,
            avatar_url=f"https://cdn.example/{member_id}.png",
        )

    def get_member(self, member_id: int) -> GuildMember | None:
        return self.members.get(member_id)

    def set_channel_overwrites(self, channel_id: int, overwrites: list[dict]) -> None:
        if self.fail:
            raise RuntimeError("Discord unavailable")
        self.overwrites.append((channel_id, overwrites))


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------
class Seeder:
    """Insert rows directly; every method returns the new primary key."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def _add(self, row):
        with Session(self.engine) as session:
            session.add(row)
            session.commit()
            return row.id

    def season(self, name: str = "Saison 1", start: datetime | None = None) -> int:
        start = start or datetime(2026, 9, 1, tzinfo=UTC)
        return self._add(Season(name=name, starts_at=start, ends_at=start.replace(year=2027)))

    def map(
        self,
        key: str,
        author: str,
        song: str,
        sub: str = "",
        level_author: str = "Mapper",
    ) -> int:
        return self._add(RankedleMap(
            map_key=key,
            name=f"{song} map",
            song_name=song,
            song_sub_name=sub,
            song_author_name=author,
            level_author_name=level_author,
            duration=180,
            versions=[
                {"downloadURL": f"https://cdn.example/old/{key}.zip", "coverURL": "https://cdn.example/old.jpg"},
                {"downloadURL": f"https://cdn.example/{key}.zip", "coverURL": f"https://cdn.example/{key}.jpg"},
            ],
        ))

    def puzzle(self, map_id: int, day: date | None, season_id: int) -> int:
        return self._add(Puzzle(season_id=season_id, map_id=map_id, date=day))

    def message(self, kind: MessageKind, content: str = "gg", image: bytes | None = None) -> int:
        return self._add(FlavorMessage(kind=kind.value, content=content, image=image))

    def attempt(self, puzzle_id: int, member_id: int, **fields) -> int:
        values = {"skips": 0, "details": None, "hint": False, "status": "in_progress"}
        values.update(fields)
        return self._add(Attempt(puzzle_id=puzzle_id, member_id=member_id, **values))


@pytest.fixture
def seed(db_engine) -> Seeder:
    return Seeder(db_engine)


@pytest.fixture
def cfg(tmp_path) -> RankedleConfig:
    return RankedleConfig(
        community_name="BSFR",
        guild_id=EVERYONE_ROLE,
        admin_role_id=ADMIN_ROLE,
        everyone_role_id=EVERYONE_ROLE,
        results_channel_id=CHANNEL,
        assets_dir=str(tmp_path / "assets"),
        banned_member_ids=frozenset({BANNED}),
    )


@pytest.fixture
def toolchain() -> FakeToolchain:
    return FakeToolchain()


@pytest.fixture
def guild() -> FakeGateway:
    gateway = FakeGateway()
    gateway.add(PLAYER, "Alice")
    gateway.add(OTHER_PLAYER, "Bob")
    return gateway


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def service(db_engine, cfg, toolchain, guild, clock) -> RankedleService:
    return RankedleService(db_engine, cfg, toolchain=toolchain, guild=guild, clock=clock)


@pytest.fixture
def game(seed) -> SimpleNamespace:
    """A season, a small map pool and today's puzzle on "Camellia - Ghost".

    ``twin`` is a second catalog entry of the same song (another mapper).
    """
    season_id = seed.season()
    answer = seed.map("1a2b", "Camellia", "Ghost", level_author="Nixie")
    twin = seed.map("9f9f", "Camellia", "Ghost", level_author="Someone Else")
    decoy = seed.map("3c4d", "Camellia", "Exit This Earth's Atomosphere")
    other = seed.map("5e6f", "Laur", "Sound Chimera", sub="(Extended)")
    puzzle_id = seed.puzzle(answer, TODAY, season_id)
    seed.message(MessageKind.FIRST_TRY, "First try!")
    seed.message(MessageKind.WON, "Well played")
    seed.message(MessageKind.LOSE, "Better luck tomorrow")
    return SimpleNamespace(
        season_id=season_id,
        answer=answer,
        twin=twin,
        decoy=decoy,
        other=other,
        puzzle_id=puzzle_id,
    )
