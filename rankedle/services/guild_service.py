"""
rankedle.services.guild_service — Guild Membership & Results Channel Sync
==========================================================================

The core only needs two things from Discord: "who is this member" (for
ranking display) and "recompute who may see the results channel".  Both go
through the :class:`GuildGateway` protocol so services and tests never talk
to Discord directly.

Two implementations ship:

* :class:`DiscordRestGateway` — Discord REST v10 over ``httpx`` with the
  bot token; used by the API process.
* ``BotGuildGateway`` in :mod:`rankedle.bot.core` — reads the discord.py
  member cache; used inside the bot process.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Protocol

import httpx
from sqlalchemy import Engine, select

from rankedle.constants import VIEW_CHANNEL
from rankedle.database.engine import get_session
from rankedle.database.models import Attempt, AttemptStatus

logger = logging.getLogger(__name__)

DISCORD_API = "https://discord.com/api/v10"
CDN = "https://cdn.discordapp.com"

OVERWRITE_ROLE = 0
OVERWRITE_MEMBER = 1


@dataclass(frozen=True, slots=True)
class GuildMember:
    id: int
    display_name: str
    avatar_url: str
    roles: frozenset[int] = field(default_factory=frozenset)


class GuildGateway(Protocol):
    def get_member(self, member_id: int) -> GuildMember | None: ...

    def set_channel_overwrites(self, channel_id: int, overwrites: list[dict]) -> None: ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def avatar_url(user_id: int, avatar_hash: str | None, size: int = 80) -> str:
    """Construct a Discord CDN avatar URL."""
    if avatar_hash:
        ext = "gif" if avatar_hash.startswith("a_") else "png"
        return f"{CDN}/avatars/{user_id}/{avatar_hash}.{ext}?size={size}"
    return f"{CDN}/embed/avatars/{(user_id >> 22) % 6}.png"


def build_results_overwrites(
    everyone_role_id: int, admin_role_id: int, member_ids: list[int]
) -> list[dict]:
    """Permission overwrites for the results channel.

    Hidden from @everyone, visible to the admin role and to every member
    who has finished today's puzzle.
    """
    view = str(VIEW_CHANNEL)
    overwrites = [
        {"id": str(everyone_role_id), "type": OVERWRITE_ROLE, "allow": "0", "deny": view},
        {"id": str(admin_role_id), "type": OVERWRITE_ROLE, "allow": view, "deny": "0"},
    ]
    for member_id in member_ids:
        overwrites.append(
            {"id": str(member_id), "type": OVERWRITE_MEMBER, "allow": view, "deny": "0"}
        )
    return overwrites


def finished_member_ids(engine: Engine, puzzle_id: int) -> list[int]:
    with get_session(engine) as session:
        return list(session.scalars(
            select(Attempt.member_id)
            .where(
                Attempt.puzzle_id == puzzle_id,
                Attempt.status != AttemptStatus.IN_PROGRESS.value,
            )
            .order_by(Attempt.id)
        ).all())


def sync_results_channel(
    engine: Engine,
    gateway: GuildGateway | None,
    *,
    puzzle_id: int,
    channel_id: int | None,
    everyone_role_id: int,
    admin_role_id: int,
) -> bool:
    """Push fresh overwrites to the results channel.

    Never raises: failures are logged and reported as ``False``.
    """
    if gateway is None or channel_id is None:
        return False
    try:
        member_ids = finished_member_ids(engine, puzzle_id)
        overwrites = build_results_overwrites(everyone_role_id, admin_role_id, member_ids)
        gateway.set_channel_overwrites(channel_id, overwrites)
    except Exception:
        logger.exception("Results channel sync failed for channel %s", channel_id)
        return False
    logger.info(
        "Results channel %s synced (%d finished members)", channel_id, len(member_ids)
    )
    return True


# ---------------------------------------------------------------------------
# REST implementation
# ---------------------------------------------------------------------------
class DiscordRestGateway:
    """:class:`GuildGateway` backed by the Discord REST API.

    Member lookups are cached for ``member_ttl`` seconds so rendering a
    ranking does not issue one request per row on every page load.
    """

    def __init__(
        self,
        token: str,
        guild_id: int,
        *,
        member_ttl: float = 300.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.guild_id = guild_id
        self._member_ttl = member_ttl
        self._client = client or httpx.Client(
            base_url=DISCORD_API,
            headers={"Authorization": f"Bot {token}"},
            timeout=10.0,
        )
        self._members: dict[int, tuple[float, GuildMember | None]] = {}
        self._lock = threading.Lock()

    def close(self) -> None:
        self._client.close()

    def get_member(self, member_id: int) -> GuildMember | None:
        now = time.monotonic()
        with self._lock:
            cached = self._members.get(member_id)
        if cached and now - cached[0] < self._member_ttl:
            return cached[1]

        resp = self._client.get(f"/guilds/{self.guild_id}/members/{member_id}")
        if resp.status_code == 404:
            member = None
        else:
            resp.raise_for_status()
            member = self._parse_member(resp.json())

        with self._lock:
            self._members[member_id] = (now, member)
        return member

    def set_channel_overwrites(self, channel_id: int, overwrites: list[dict]) -> None:
        resp = self._client.patch(
            f"/channels/{channel_id}", json={"permission_overwrites": overwrites}
        )
        resp.raise_for_status()

    @staticmethod
    def _parse_member(data: dict) -> GuildMember:
        user = data.get("user") or {}
        user_id = int(user["id"])
        name = data.get("nick") or user.get("global_name") or user.get("username", "")
        return GuildMember(
            id=user_id,
            display_name=name,
            avatar_url=avatar_url(user_id, user.get("avatar")),
            roles=frozenset(int(r) for r in data.get("roles", [])),
        )
