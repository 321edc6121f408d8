"""
rankedle.config — YAML Configuration Loader
============================================

Reads ``config.yaml`` for the guild identity and the Rankedle runtime
settings (asset directory, timezone, media binaries, moderation list).
Secrets (``DATABASE_URL``, ``JWT_SECRET``, ``DISCORD_TOKEN``) stay in the
environment and are loaded through ``python-dotenv`` by the entry points.

Usage::

    from rankedle.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.community_name)    # "BSFR"
    print(cfg.results_channel_id)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from zoneinfo import ZoneInfo

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RankedleConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Discord
    guild_id: int
    admin_role_id: int
    everyone_role_id: int
    results_channel_id: int | None = None  # Channel unlocked for finished players

    # Rankedle
    assets_dir: str = "rankedle"
    timezone: str = "Europe/Paris"
    share_url: str = "https://bsaber.fr/rankedle"
    banned_member_ids: frozenset[int] = field(default_factory=frozenset)

    # Media toolchain
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def is_banned(self, member_id: int) -> bool:
        return member_id in self.banned_member_ids


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> RankedleConfig:
    """Read *path* and return a :class:`RankedleConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh)

    rankedle: dict = raw.get("rankedle") or {}
    return RankedleConfig(
        community_name=raw["community_name"],
        guild_id=int(raw["guild_id"]),
        admin_role_id=int(raw["admin_role_id"]),
        everyone_role_id=int(raw.get("everyone_role_id") or raw["guild_id"]),
        results_channel_id=(
            int(raw["results_channel_id"]) if raw.get("results_channel_id") else None
        ),
        assets_dir=rankedle.get("assets_dir", "rankedle"),
        timezone=rankedle.get("timezone", "Europe/Paris"),
        share_url=rankedle.get("share_url", "https://bsaber.fr/rankedle"),
        banned_member_ids=frozenset(
            int(member_id) for member_id in rankedle.get("banned_member_ids") or []
        ),
        ffmpeg_path=rankedle.get("ffmpeg_path", "ffmpeg"),
        ffprobe_path=rankedle.get("ffprobe_path", "ffprobe"),
    )
