# =============================================================
# rewind/cogs/lolstats.py
# -------------------------------------------------------------
# /lolstats – « Year-end rewind » d'un Riot ID
#   1. Riot ID → compte (account-v1) → profil (summoner-v4)
#   2. Saison courante : IDs paginés + détails (cache permanent)
#   3. Embed : parties, winrate, KDA, top 5 champions, rang
# =============================================================

from __future__ import annotations

import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from rewind.riot.errors import (
    AuthFailure,
    NetworkError,
    NoCredentialsAvailable,
    NotFound,
    RateLimitError,
    RequestTimeout,
    RiotAPIError,
    ValidationError,
)
from rewind.services import stats
from rewind.services.season import Progress, SeasonSummary, SeasonWindow

log = logging.getLogger(__name__)

EMBED_COLOR = 0x5865F2
FORMAT_HINT = "**Format:** `GameName#TagLine`\n**Example:** `SummonerName#TAG1`"

REGION_CHOICES = [
    app_commands.Choice(name="🇺🇸 Americas (NA, BR, LAN, LAS)", value="americas"),
    app_commands.Choice(name="🇪🇺 Europe (EUW, EUNE, TR, RU)", value="europe"),
    app_commands.Choice(name="🇰🇷 Asia (KR, JP)", value="asia"),
    app_commands.Choice(name="🌏 SEA (OCE, SG, TW, VN, PH)", value="sea"),
    app_commands.Choice(name="🇺🇸 North America (NA1)", value="na1"),
    app_commands.Choice(name="🇧🇷 Brazil (BR1)", value="br1"),
    app_commands.Choice(name="🇪🇺 Europe West (EUW1)", value="euw1"),
    app_commands.Choice(name="🇪🇺 Europe Nordic & East (EUN1)", value="eun1"),
    app_commands.Choice(name="🇰🇷 Korea (KR)", value="kr"),
    app_commands.Choice(name="🇯🇵 Japan (JP1)", value="jp1"),
    app_commands.Choice(name="🇦🇺 Oceania (OC1)", value="oc1"),
    app_commands.Choice(name="🇸🇬 Singapore (SG2)", value="sg2"),
]


# =============================================================
# ---------------------- Messages -----------------------------
# =============================================================
def describe_error(error: Exception, riot_id: str, region: Optional[str] = None) -> str:
    """Turn a client error into the message shown to the user."""
    if isinstance(error, ValidationError):
        return f"❌ {error}\n\n**Provided:** `{riot_id}`\n{FORMAT_HINT}"
    if isinstance(error, NotFound):
        where = f" in region **{region}**" if region else ""
        tip = "" if region else "\n💡 **Tip:** Try specifying your region with the `region` option!"
        return (
            f"❌ Riot ID **{riot_id}** not found{where}.\n\n"
            "Please check:\n"
            "• The Riot ID is spelled correctly (format: GameName#TagLine)\n"
            "• The tag line is correct\n"
            f"• The account exists in the specified region{tip}"
        )
    if isinstance(error, (AuthFailure, NoCredentialsAvailable)):
        return (
            "❌ **API Authentication Failed**\n\n"
            "The Riot API key is invalid, expired, or missing permissions.\n"
            "Personal API keys expire after **24 hours**.\n\n"
            "Please contact the bot administrator to update the API key."
        )
    if isinstance(error, RateLimitError):
        return "❌ Rate limit exceeded. Please try again in a few moments."
    if isinstance(error, RequestTimeout):
        return (
            "❌ **Request Timeout**\n\n"
            "The Riot API server did not respond in time.\n\n"
            "Please try again in a few moments."
        )
    if isinstance(error, NetworkError):
        return (
            "❌ **Network Error**\n\n"
            "Unable to connect to Riot API servers. This may be a temporary issue.\n\n"
            "Please try again in a few moments."
        )
    if isinstance(error, RiotAPIError) and error.status:
        return f"❌ API error ({error.status}): {error}"
    return "❌ Failed to fetch League of Legends statistics."


def progress_message(progress: Progress, season: int) -> str:
    return (
        f"📊 Processing matches: {progress.scanned} scanned... "
        f"Found {progress.in_window} Season {season} matches so far."
    )


def build_embed(display_name: str, summary: SeasonSummary, champions, rank: Optional[dict] = None) -> discord.Embed:
    embed = discord.Embed(
        title=f"🎮 {display_name}'s Season {summary.season} Rewind",
        description=f"Here are your League of Legends statistics for Season {summary.season}!",
        color=EMBED_COLOR,
        timestamp=discord.utils.utcnow(),
    )
    embed.add_field(name="🏆 Total Games Played", value=f"{summary.total_games} games", inline=True)
    embed.add_field(name="🎯 Win Rate", value=f"{summary.win_rate}%", inline=True)
    k = summary.kda
    embed.add_field(
        name="⚔️ Average KDA",
        value=f"{k['kills']}/{k['deaths']}/{k['assists']} (KDA: {k['kda']})",
        inline=True,
    )
    top = "\n".join(
        f"{champions.name(c['champion_id'])}: {c['games']} games ({c['win_rate']}% WR)"
        for c in summary.top_champions
    )
    embed.add_field(name="👑 Most Played Champions", value=top or "No champion data available", inline=False)
    if rank and rank.get("tier") != "UNRANKED":
        embed.add_field(
            name="📈 Current Rank",
            value=f"{rank['tier'].title()} {rank['division']} – {rank['lp']} LP",
            inline=False,
        )
    if summary.skipped:
        embed.set_footer(text=f"{summary.skipped} match(es) skipped (unavailable or incomplete)")
    else:
        embed.set_footer(text="Data collected from Riot Games API")
    return embed


# =============================================================
# ------------------------- Cog -------------------------------
# =============================================================
class LolStatsCog(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.services = bot.services

    async def _edit(self, interaction: discord.Interaction, **kwargs) -> None:
        # Le token d'interaction expire après 15 min : on log et on continue
        try:
            await interaction.edit_original_response(**kwargs)
        except discord.HTTPException as e:
            log.warning("Could not edit /lolstats reply: %s", e)

    @app_commands.command(name="lolstats", description="Get your League of Legends Year-end rewind statistics")
    @app_commands.describe(
        riot_id='Your Riot ID (format: GameName#TagLine, e.g., "SummonerName#TAG1")',
        region="Your account region (optional - helps find your account faster)",
    )
    @app_commands.choices(region=REGION_CHOICES)
    async def lolstats(
        self,
        interaction: discord.Interaction,
        riot_id: str,
        region: Optional[app_commands.Choice[str]] = None,
    ):
        await interaction.response.defer(ephemeral=True, thinking=True)
        region_value = region.value if region else None
        riot_id = riot_id.strip()
        client = self.services.client

        try:
            summoner = await client.get_summoner_by_riot_id(riot_id, region_value)
            display_name = summoner.get("riotId") or riot_id
            log.info("Found summoner %s (PUUID %s...)", display_name, summoner["puuid"][:8])

            await self.services.champions.initialize()
            window = SeasonWindow.current()
            await self._edit(
                interaction,
                content=f"📊 Fetching all ranked matches for Season {window.season}... This may take a moment.",
            )

            async def on_progress(progress: Progress) -> None:
                await self._edit(interaction, content=progress_message(progress, window.season))

            summary = await self.services.aggregator.rewind(summoner["puuid"], window, region_value, on_progress)
        except RiotAPIError as e:
            log.warning("/lolstats %s failed: %s: %s", riot_id, type(e).__name__, e)
            return await self._edit(interaction, content=describe_error(e, riot_id, region_value))

        if summary.total_games == 0:
            return await self._edit(
                interaction,
                content=(
                    f"✅ Found Riot ID **{display_name}**, but no matches found for Season {summary.season} "
                    f"({summary.start_date} to {summary.end_date}). Try playing some games!"
                ),
            )

        rank = None
        try:
            rank = stats.peak_rank(await client.get_league_entries_by_puuid(summoner["puuid"], region_value))
        except RiotAPIError as e:
            log.info("League entries unavailable for %s: %s", display_name, e)

        log.info(
            "Rewind %s: %d games, %d%% WR, KDA %s",
            display_name, summary.total_games, summary.win_rate, summary.kda["kda"],
        )
        await self._edit(
            interaction,
            content=None,
            embed=build_embed(display_name, summary, self.services.champions, rank),
        )


async def setup(bot: commands.Bot):
    await bot.add_cog(LolStatsCog(bot))
