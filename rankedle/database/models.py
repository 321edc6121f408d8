"""
rankedle.database.models — SQLAlchemy 2.0 Data Models
======================================================

Tables:
- rankedle_seasons       — Scoring windows (current = highest id)
- rankedle_maps          — Candidate songs mirrored from the map catalog
- rankedle_maps_excluded — Catalog keys never eligible for selection
- rankedles              — One row per generated daily puzzle
- rankedle_scores        — Per (puzzle, member) attempt state
- rankedle_stats         — Per (season, member) cumulative stats
- rankedle_messages      — Flavor messages shown on completion
"""

from __future__ import annotations

import enum
from datetime import date as date_type
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Rankedle ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class AttemptStatus(enum.StrEnum):
    """Lifecycle of an attempt. WON and LOST are terminal."""
    IN_PROGRESS = "in_progress"
    WON = "won"
    LOST = "lost"


class MessageKind(enum.StrEnum):
    """Flavor message categories, keyed by how the attempt ended."""
    FIRST_TRY = "first_try"
    WON = "won"
    LOSE = "lose"


class DetailStatus(enum.StrEnum):
    SKIP = "skip"
    FAIL = "fail"


# ---------------------------------------------------------------------------
# Seasons — scoring windows
# ---------------------------------------------------------------------------
class Season(Base):
    __tablename__ = "rankedle_seasons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<Season id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# RankedleMap — candidate song from the catalog mirror
# ---------------------------------------------------------------------------
class RankedleMap(Base):
    """A ranked map mirrored from the external catalog.

    Searchable metadata is denormalised into columns; the catalog's
    ``versions`` list is kept verbatim (the last entry is current).
    """
    __tablename__ = "rankedle_maps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    map_key: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    song_name: Mapped[str] = mapped_column(String(255), nullable=False)
    song_sub_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    song_author_name: Mapped[str] = mapped_column(String(255), nullable=False)
    level_author_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    duration: Mapped[int] = mapped_column(Integer, default=0)
    versions: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)

    puzzle: Mapped[Puzzle | None] = relationship(back_populates="map", uselist=False)

    __table_args__ = (
        Index("ix_rankedle_maps_author_song", "song_author_name", "song_name"),
    )

    @property
    def current_version(self) -> dict:
        return self.versions[-1] if self.versions else {}

    @property
    def download_url(self) -> str | None:
        return self.current_version.get("downloadURL")

    @property
    def cover_url(self) -> str | None:
        return self.current_version.get("coverURL")

    @property
    def display_name(self) -> str:
        """``"Author - Song"`` with the sub name appended when present."""
        name = f"{self.song_author_name} - {self.song_name}"
        if self.song_sub_name:
            name += f" {self.song_sub_name}"
        return name

    @property
    def identity(self) -> tuple[str, str]:
        """(author, song) tuple used as the win condition."""
        return self.song_author_name, self.song_name

    def __repr__(self) -> str:
        return f"<RankedleMap id={self.id} key={self.map_key!r}>"


class ExcludedMap(Base):
    __tablename__ = "rankedle_maps_excluded"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    map_key: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<ExcludedMap key={self.map_key!r}>"


# ---------------------------------------------------------------------------
# Puzzle — one day's challenge
# ---------------------------------------------------------------------------
class Puzzle(Base):
    __tablename__ = "rankedles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    season_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("rankedle_seasons.id"), nullable=False
    )
    map_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("rankedle_maps.id"), nullable=False, unique=True
    )
    date: Mapped[date_type | None] = mapped_column(Date, nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    map: Mapped[RankedleMap] = relationship(back_populates="puzzle")
    attempts: Mapped[list[Attempt]] = relationship(back_populates="puzzle")

    def __repr__(self) -> str:
        return f"<Puzzle id={self.id} map={self.map_id} date={self.date}>"


# ---------------------------------------------------------------------------
# Attempt — a member's run at one puzzle
# ---------------------------------------------------------------------------
class Attempt(Base):
    """Progress of one member on one puzzle.

    ``status`` carries the outcome; ``date_end`` doubles as the marker that
    season stats have been folded in (set through a conditional UPDATE).
    ``version`` is an optimistic lock: concurrent writers on the same row
    lose with :class:`~sqlalchemy.orm.exc.StaleDataError`.
    """
    __tablename__ = "rankedle_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    puzzle_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("rankedles.id"), nullable=False
    )
    member_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    date_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    date_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    skips: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    details: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    hint: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AttemptStatus.IN_PROGRESS.value
    )
    message_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("rankedle_messages.id", ondelete="SET NULL"), nullable=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    puzzle: Mapped[Puzzle] = relationship(back_populates="attempts")

    __table_args__ = (
        UniqueConstraint("puzzle_id", "member_id", name="uq_rankedle_scores_puzzle_member"),
        Index("ix_rankedle_scores_member", "member_id"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def success(self) -> bool | None:
        """Tri-state outcome: None while in progress."""
        if self.status == AttemptStatus.WON:
            return True
        if self.status == AttemptStatus.LOST:
            return False
        return None

    @property
    def is_terminal(self) -> bool:
        return self.status != AttemptStatus.IN_PROGRESS

    def __repr__(self) -> str:
        return (
            f"<Attempt puzzle={self.puzzle_id} member={self.member_id} "
            f"skips={self.skips} status={self.status}>"
        )


# ---------------------------------------------------------------------------
# SeasonStat — per-season cumulative counters
# ---------------------------------------------------------------------------
class SeasonStat(Base):
    __tablename__ = "rankedle_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    season_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("rankedle_seasons.id"), nullable=False
    )
    member_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    try1: Mapped[int] = mapped_column(Integer, default=0)
    try2: Mapped[int] = mapped_column(Integer, default=0)
    try3: Mapped[int] = mapped_column(Integer, default=0)
    try4: Mapped[int] = mapped_column(Integer, default=0)
    try5: Mapped[int] = mapped_column(Integer, default=0)
    try6: Mapped[int] = mapped_column(Integer, default=0)
    played: Mapped[int] = mapped_column(Integer, default=0)
    won: Mapped[int] = mapped_column(Integer, default=0)
    current_streak: Mapped[int] = mapped_column(Integer, default=0)
    max_streak: Mapped[int] = mapped_column(Integer, default=0)
    points: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (
        UniqueConstraint("season_id", "member_id", name="uq_rankedle_stats_season_member"),
        Index("ix_rankedle_stats_points", "season_id", "points"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "try1": self.try1,
            "try2": self.try2,
            "try3": self.try3,
            "try4": self.try4,
            "try5": self.try5,
            "try6": self.try6,
            "played": self.played,
            "won": self.won,
            "currentStreak": self.current_streak,
            "maxStreak": self.max_streak,
        }

    def __repr__(self) -> str:
        return f"<SeasonStat season={self.season_id} member={self.member_id} pts={self.points}>"


# ---------------------------------------------------------------------------
# FlavorMessage — cosmetic completion text / image
# ---------------------------------------------------------------------------
class FlavorMessage(Base):
    __tablename__ = "rankedle_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column("type", String(20), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    image: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)

    __table_args__ = (
        Index("ix_rankedle_messages_type", "type"),
    )

    def __repr__(self) -> str:
        return f"<FlavorMessage id={self.id} kind={self.kind!r}>"
