"""
rankedle.bot.core — Bot Instance & Cog Loader
==============================================

:class:`RankedleBot` is a ``commands.Bot`` that carries the shared config,
DB engine and :class:`RankedleService` so every cog can reach them via
``self.bot.*``.  Inside the bot process the service's guild gateway is a
:class:`BotGuildGateway`, which answers member lookups from the
discord.py cache instead of the REST API.
"""

from __future__ import annotations

import asyncio
import logging
import os

import discord
from discord.ext import commands
from sqlalchemy import Engine

from rankedle.config import RankedleConfig
from rankedle.services.guild_service import OVERWRITE_MEMBER, GuildMember
from rankedle.services.media_service import MediaToolchain
from rankedle.services.rankedle_service import RankedleService

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "rankedle.bot.cogs.meta",
    "rankedle.bot.cogs.tasks",
]

OVERWRITE_TIMEOUT = 30.0


class BotGuildGateway:
    """:class:`~rankedle.services.guild_service.GuildGateway` over the
    bot's member cache.

    Service code runs on worker threads (``run_db``), so channel edits
    are scheduled back onto the bot's event loop and awaited from there.
    """

    def __init__(self, bot: commands.Bot, guild_id: int) -> None:
        self.bot = bot
        self.guild_id = guild_id

    def _guild(self) -> discord.Guild | None:
        return self.bot.get_guild(self.guild_id)

    def get_member(self, member_id: int) -> GuildMember | None:
        guild = self._guild()
        member = guild.get_member(member_id) if guild else None
        if member is None:
            return None
        return GuildMember(
            id=member.id,
            display_name=member.display_name,
            avatar_url=member.display_avatar.url,
            roles=frozenset(r.id for r in member.roles),
        )

    def set_channel_overwrites(self, channel_id: int, overwrites: list[dict]) -> None:
        loop = self.bot.loop
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            raise RuntimeError("set_channel_overwrites must be called from a worker thread")
        future = asyncio.run_coroutine_threadsafe(
            self._apply_overwrites(channel_id, overwrites), loop
        )
        future.result(timeout=OVERWRITE_TIMEOUT)

    async def _apply_overwrites(self, channel_id: int, overwrites: list[dict]) -> None:
        guild = self._guild()
        channel = guild.get_channel(channel_id) if guild else None
        if channel is None:
            raise LookupError(f"Channel {channel_id} not found in guild {self.guild_id}")

        mapping: dict[discord.abc.Snowflake, discord.PermissionOverwrite] = {}
        for ow in overwrites:
            target_id = int(ow["id"])
            if ow["type"] == OVERWRITE_MEMBER:
                target = guild.get_member(target_id) or discord.Object(id=target_id, type=discord.Member)
            else:
                target = guild.get_role(target_id) or discord.Object(id=target_id, type=discord.Role)
            allow = discord.Permissions(int(ow["allow"]))
            deny = discord.Permissions(int(ow["deny"]))
            mapping[target] = discord.PermissionOverwrite.from_pair(allow, deny)

        await channel.edit(overwrites=mapping, reason="Rankedle: results channel sync")


class RankedleBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`RankedleConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine` connected to PostgreSQL.
    """

    def __init__(self, cfg: RankedleConfig, engine: Engine) -> None:
        intents = discord.Intents.default()
        intents.members = True            # Privileged: member cache for rankings
        intents.presences = False

        super().__init__(
            command_prefix="!",
            intents=intents,
            description=f"{cfg.community_name} — Rankedle",
        )

        self.cfg = cfg
        self.engine = engine
        self.service = RankedleService(
            engine,
            cfg,
            toolchain=MediaToolchain(cfg.ffmpeg_path, cfg.ffprobe_path),
            guild=BotGuildGateway(self, cfg.guild_id),
        )

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load all cog extensions; one broken cog doesn't stop the others."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        """Fired when the bot has connected and the cache is populated."""
        assert self.user is not None  # guaranteed after on_ready
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))
