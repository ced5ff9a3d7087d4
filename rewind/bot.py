# bot.py – Point d'entrée principal du bot « rewind »
# -----------------------------------------------------------------------------
#  • Construit les services partagés (clés, cache, file Riot) AVANT les cogs,
#    qui les lisent sur bot.services.
#  • Charge tous les cogs listés dans EXTENSIONS en loguant les erreurs.
#  • Sync les slash-commands : instantanément sur DEBUG_GUILD_ID s'il est
#    défini, sinon globalement (jusqu'à 1h de propagation chez Discord).
#  • HEALTH_PORT défini → sert /health, /readiness… dans la même boucle.
# -----------------------------------------------------------------------------

from __future__ import annotations

import asyncio
import traceback

import discord
from discord.ext import commands

from rewind.config import settings
from rewind.health import create_app, serve
from rewind.logging_config import setup_logging, get_logger
from rewind.services.container import build_services

###############################################################################
# Logging --------------------------------------------------------------------
###############################################################################
setup_logging(level=settings.LOG_LEVEL)
log = get_logger("rewind.bot")

###############################################################################
# Bot & intents --------------------------------------------------------------
###############################################################################
intents = discord.Intents.default()
intents.guilds = True

bot = commands.Bot(command_prefix="/", intents=intents)

###############################################################################
# Extensions -----------------------------------------------------------------
###############################################################################
EXTENSIONS: list[str] = [
    "rewind.cogs.ping",
    "rewind.cogs.lolstats",
    "rewind.cogs.apistats",
]


async def load_all_extensions() -> None:
    """Charge chaque extension en loguant la stack-trace si une erreur survient."""
    for ext in EXTENSIONS:
        try:
            await bot.load_extension(ext)
            log.info("✅ Loaded extension %s", ext)
        except (ImportError, commands.ExtensionError) as e:
            log.error("❌ Failed to load extension %s: %s\n%s", ext, e, traceback.format_exc())
            raise

###############################################################################
# Events ---------------------------------------------------------------------
###############################################################################
@bot.event
async def on_ready():
    log.info("Bot prêt: %s (ID %s)", bot.user, bot.user.id)

    if settings.DEBUG_GUILD_ID:
        guild = discord.Object(id=settings.DEBUG_GUILD_ID)
        bot.tree.copy_global_to(guild=guild)
        synced = await bot.tree.sync(guild=guild)
        log.info("🔁 Synced %d commandes sur la guilde %s", len(synced), settings.DEBUG_GUILD_ID)
    else:
        synced = await bot.tree.sync()
        log.info("🌐 Synced %d commandes globales (peut prendre ~1h)", len(synced))

    for cmd in bot.tree.walk_commands():
        log.info("• /%s – %s", cmd.qualified_name, cmd.description or "(no desc)")

###############################################################################
# Routine principale ---------------------------------------------------------
###############################################################################
async def main() -> None:
    services = build_services(settings)
    bot.services = services
    purged = services.cache.purge_corrupted()
    if purged:
        log.info("Removed %d corrupted cache file(s) at startup", purged)

    health_task = None
    if settings.HEALTH_PORT:
        health_task = asyncio.create_task(serve(create_app(services), settings.HEALTH_PORT))
        log.info("Health endpoints on port %d", settings.HEALTH_PORT)

    try:
        await load_all_extensions()
        async with bot:
            await bot.start(settings.DISCORD_TOKEN)
    finally:
        if health_task is not None:
            health_task.cancel()
        await services.close()


if __name__ == "__main__":
    asyncio.run(main())
