"""
rankedle.bot.cogs.meta — Ranking & Stats Commands
==================================================

Hybrid commands for members:
- /rankedle-ranking — Current season top 10
- /rankedle-stats — Your (or another member's) season stats
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from rankedle.constants import MAX_SKIPS
from rankedle.database.engine import run_db

if TYPE_CHECKING:
    from rankedle.bot.core import RankedleBot

RANKING_SIZE = 10
RANK_BADGES = {1: "\U0001f947", 2: "\U0001f948", 3: "\U0001f949"}


class Meta(commands.Cog, name="Meta"):
    """Season ranking and personal stats."""

    def __init__(self, bot: RankedleBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /rankedle-ranking
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="rankedle-ranking",
        description="Show the current Rankedle season ranking.",
    )
    async def ranking(self, ctx: commands.Context) -> None:
        rows = await run_db(self.bot.service.ranking)
        if not rows:
            await ctx.send("\U0001f50d Nobody has finished a Rankedle this season yet.", ephemeral=True)
            return

        lines = []
        for row in rows[:RANKING_SIZE]:
            badge = RANK_BADGES.get(row["rank"], f"`#{row['rank']}`")
            lines.append(f"{badge} **{row['name']}** — {row['points']} pts")
        embed = discord.Embed(
            title="\U0001f3b5 Rankedle — Season Ranking",
            description="\n".join(lines),
            color=discord.Color.gold(),
        )
        embed.set_footer(text=self.bot.cfg.community_name)
        await ctx.send(embed=embed)

    # -------------------------------------------------------------------
    # /rankedle-stats
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="rankedle-stats",
        description="View your (or another member's) Rankedle season stats.",
    )
    @app_commands.describe(member="The member to look up (defaults to you)")
    async def stats(self, ctx: commands.Context, member: discord.Member | None = None) -> None:
        target = member or ctx.author
        data = await run_db(self.bot.service.player_stats, target.id)

        if data is None:
            await ctx.send(
                f"\U0001f50d **{target.display_name}** hasn't finished a Rankedle this season.",
                ephemeral=True,
            )
            return

        played = data["played"]
        win_rate = round(100 * data["won"] / played) if played else 0

        embed = discord.Embed(
            title=f"\U0001f3b5 {target.display_name}'s Rankedle",
            color=discord.Color.purple(),
        )
        embed.set_thumbnail(url=target.display_avatar.url)
        embed.add_field(name="Points", value=str(data["points"]), inline=True)
        embed.add_field(name="Played", value=str(played), inline=True)
        embed.add_field(name="Wins", value=f"{data['won']} ({win_rate}%)", inline=True)
        embed.add_field(
            name="Streak",
            value=f"{data['currentStreak']} (best {data['maxStreak']})",
            inline=True,
        )

        distribution = "\n".join(
            f"`{i}` {'█' * data[f'try{i}']} {data[f'try{i}']}"
            for i in range(1, MAX_SKIPS + 1)
        )
        embed.add_field(name="Guess distribution", value=distribution, inline=False)
        embed.set_footer(text=self.bot.cfg.community_name)
        await ctx.send(embed=embed)


async def setup(bot: RankedleBot) -> None:
    await bot.add_cog(Meta(bot))
