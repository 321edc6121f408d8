"""Create rankedle tables

Revision ID: 5c2e8a1f9b07
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5c2e8a1f9b07"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create seasons, map mirror, puzzles, attempts, stats and messages."""
    op.create_table(
        "rankedle_seasons",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "rankedle_maps",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("map_key", sa.String(32), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("song_name", sa.String(255), nullable=False),
        sa.Column("song_sub_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("song_author_name", sa.String(255), nullable=False),
        sa.Column("level_author_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("duration", sa.Integer(), server_default="0"),
        sa.Column("versions", postgresql.JSONB(), nullable=False),
    )
    op.create_index(
        "ix_rankedle_maps_author_song", "rankedle_maps", ["song_author_name", "song_name"]
    )

    op.create_table(
        "rankedle_maps_excluded",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("map_key", sa.String(32), nullable=False, unique=True),
    )

    op.create_table(
        "rankedle_messages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("image", sa.LargeBinary(), nullable=True),
    )
    op.create_index("ix_rankedle_messages_type", "rankedle_messages", ["type"])

    op.create_table(
        "rankedles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "season_id", sa.Integer(), sa.ForeignKey("rankedle_seasons.id"), nullable=False
        ),
        sa.Column(
            "map_id", sa.Integer(), sa.ForeignKey("rankedle_maps.id"),
            nullable=False, unique=True,
        ),
        sa.Column("date", sa.Date(), nullable=True, unique=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "rankedle_scores",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("puzzle_id", sa.Integer(), sa.ForeignKey("rankedles.id"), nullable=False),
        sa.Column("member_id", sa.BigInteger(), nullable=False),
        sa.Column("date_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("date_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("skips", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("details", postgresql.JSONB(), nullable=True),
        sa.Column("hint", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(20), nullable=False, server_default="in_progress"),
        sa.Column(
            "message_id", sa.Integer(),
            sa.ForeignKey("rankedle_messages.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.UniqueConstraint("puzzle_id", "member_id", name="uq_rankedle_scores_puzzle_member"),
    )
    op.create_index("ix_rankedle_scores_member", "rankedle_scores", ["member_id"])

    op.create_table(
        "rankedle_stats",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "season_id", sa.Integer(), sa.ForeignKey("rankedle_seasons.id"), nullable=False
        ),
        sa.Column("member_id", sa.BigInteger(), nullable=False),
        *(
            sa.Column(name, sa.Integer(), server_default="0")
            for name in (
                "try1", "try2", "try3", "try4", "try5", "try6",
                "played", "won", "current_streak", "max_streak", "points",
            )
        ),
        sa.UniqueConstraint("season_id", "member_id", name="uq_rankedle_stats_season_member"),
    )
    op.create_index("ix_rankedle_stats_points", "rankedle_stats", ["season_id", "points"])


def downgrade() -> None:
    """Drop every rankedle table."""
    op.drop_index("ix_rankedle_stats_points", table_name="rankedle_stats")
    op.drop_table("rankedle_stats")
    op.drop_index("ix_rankedle_scores_member", table_name="rankedle_scores")
    op.drop_table("rankedle_scores")
    op.drop_table("rankedles")
    op.drop_index("ix_rankedle_messages_type", table_name="rankedle_messages")
    op.drop_table("rankedle_messages")
    op.drop_table("rankedle_maps_excluded")
    op.drop_index("ix_rankedle_maps_author_song", table_name="rankedle_maps")
    op.drop_table("rankedle_maps")
    op.drop_table("rankedle_seasons")
