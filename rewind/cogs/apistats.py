# rewind/cogs/apistats.py – /apistats + maintenance périodique
# -------------------------------------------------------------
#  • /apistats : consommation (minute/heure/jour), cache, état des clés
#  • Toutes les 5 min : purge mémoire expirée + vieux buckets d'usage
# -------------------------------------------------------------

from __future__ import annotations

import logging

import discord
from discord import app_commands
from discord.ext import commands, tasks

log = logging.getLogger(__name__)

HEALTH_EMOJI = {"healthy": "🟢", "degraded": "🟡", "unhealthy": "🔴"}


def build_usage_embed(usage: dict, keys: list, cache: dict) -> discord.Embed:
    cur, total = usage["current"], usage["total"]
    embed = discord.Embed(
        title="📊 API Usage Statistics",
        description="Real-time monitoring of Riot API consumption",
        color=0x5865F2,
        timestamp=discord.utils.utcnow(),
    )
    embed.add_field(
        name="⏱️ Current Usage",
        value=(
            f"**This Minute:** {cur['minute']['requests']}/{cur['minute']['limit']} ({cur['minute']['percentage']}%)\n"
            f"**This Hour:** {cur['hour']['requests']} requests\n"
            f"**Today:** {cur['day']['requests']}/{cur['day']['limit']} ({cur['day']['percentage']}%)"
        ),
        inline=True,
    )
    embed.add_field(
        name="📈 Total Statistics",
        value=(
            f"**Total Requests:** {total['requests']:,}\n"
            f"**Cache Hits:** {total['cacheHits']:,}\n"
            f"**Cache Hit Rate:** {total['cacheHitRate']}%\n"
            f"**Errors:** {total['errors']:,}"
        ),
        inline=True,
    )
    disk = cache["disk"]
    embed.add_field(
        name="💾 Cache",
        value=(
            f"**Memory:** {cache['memory']['entries']}/{cache['memory']['max_size']}\n"
            f"**Disk:** {disk['valid']} files ({disk['size'] / 1024 / 1024:.1f} MB)\n"
            f"**Hit Rate:** {cache['hit_rate']}%"
        ),
        inline=True,
    )
    key_lines = "\n".join(
        f"{'✅' if k['enabled'] else '❌'} {HEALTH_EMOJI.get(k['health'], '⚪')} **{k['id']}**: "
        f"{k['request_count']:,} req, {k['error_count']} errors"
        for k in keys
    )
    embed.add_field(name="🔑 API Keys Status", value=key_lines or "No API keys configured", inline=False)
    embed.set_footer(text="Use multiple API keys to distribute load and avoid rate limits")
    return embed


class ApiStatsCog(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.services = bot.services
        self.maintenance_loop.start()

    def cog_unload(self):
        self.maintenance_loop.cancel()

    @tasks.loop(minutes=5)
    async def maintenance_loop(self):
        """Drop expired memory cache entries and stale usage buckets."""
        pruned = self.services.cache.prune_memory()
        cleaned = self.services.monitor.cleanup_old_stats()
        if pruned or cleaned:
            log.info("Maintenance: %d memory entries pruned, %d stat buckets removed", pruned, cleaned)

    @app_commands.command(name="apistats", description="View API usage statistics and monitoring information")
    async def apistats(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        self.services.monitor.cleanup_old_stats()
        embed = build_usage_embed(
            self.services.monitor.snapshot(),
            self.services.rotator.stats(),
            self.services.cache.stats(),
        )
        await interaction.followup.send(embed=embed, ephemeral=True)


async def setup(bot: commands.Bot):
    await bot.add_cog(ApiStatsCog(bot))
