"""
rankedle.bot.cogs.tasks — Daily Rollover Task
==============================================

At local midnight (``rankedle.timezone`` in ``config.yaml``) the bot
closes yesterday's puzzle, runs the asset pipeline for a new one and
dates a puzzle for today.  The pipeline shells out to ffmpeg, so it runs
through ``run_db()`` to keep the event loop free.

On startup the same activation runs once, so a bot restarted after
midnight still has a puzzle for today.
"""

from __future__ import annotations

import logging
from datetime import time
from typing import TYPE_CHECKING

from discord.ext import commands, tasks

from rankedle.database.engine import run_db

if TYPE_CHECKING:
    from rankedle.bot.core import RankedleBot

logger = logging.getLogger(__name__)


MIDNIGHT = time(hour=0, minute=0)


class DailyTasks(commands.Cog):
    """Cog for the daily puzzle rollover."""

    def __init__(self, bot: RankedleBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        """Start task loops when the cog is loaded."""
        self.rollover_loop.change_interval(time=MIDNIGHT.replace(tzinfo=self.bot.cfg.tz))
        self.rollover_loop.start()

    async def cog_unload(self) -> None:
        """Cancel task loops on unload."""
        self.rollover_loop.cancel()

    # -------------------------------------------------------------------
    # Rollover — runs at local midnight
    # -------------------------------------------------------------------
    @tasks.loop(time=MIDNIGHT)
    async def rollover_loop(self):
        """Finish yesterday, generate a new puzzle, activate today's."""
        try:
            puzzle = await run_db(self.bot.service.run_daily)
        except Exception:
            logger.exception("Daily rollover failed", extra={"task": "rollover"})
            return
        if puzzle is None:
            logger.error("No rankedle available for %s", self.bot.service.today())
        else:
            logger.info("Rankedle #%d is live for %s", puzzle.id, puzzle.date)

    @rollover_loop.before_loop
    async def _wait_rollover(self):
        await self.bot.wait_until_ready()
        try:
            await run_db(self.bot.service.activate_puzzle)
        except Exception:
            logger.exception("Startup activation failed", extra={"task": "rollover"})


async def setup(bot: RankedleBot) -> None:
    await bot.add_cog(DailyTasks(bot))
