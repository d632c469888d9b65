"""
Cache administration cog.

Exposes the ``/cache`` slash command group to server administrators:
- /cache stats: Show size, hit rate and eviction/expiration counters
- /cache clear [pattern]: Drop every entry, or only keys matching a prefix or /regex/
- /cache reset_stats: Zero the statistics counters

Responses are ephemeral so cache internals stay out of public channels.
"""

import re
from typing import Any, Dict

import discord
from discord import Option
from discord.ext import commands

from ragbot.cache.api_cache import ApiCache, api_cache
from ragbot.util.logger import get_logger

logger = get_logger("cache_commands")


def parse_invalidation_pattern(raw: str | None) -> str | re.Pattern[str] | None:
    """Turn user input into an invalidation pattern.

    Input wrapped in slashes (``/^ITEM_SEARCH:/``) is compiled as a regular
    expression; anything else is used as a key prefix. Blank input and an
    empty ``//`` would match every key, so both return ``None``.

    Raises:
        re.error: If a ``/.../`` pattern is not a valid regular expression.
    """
    text = (raw or "").strip()
    if len(text) >= 2 and text.startswith("/") and text.endswith("/"):
        body = text[1:-1]
        return re.compile(body) if body else None
    return text or None


def build_cache_stats_embed(stats: Dict[str, Any]) -> discord.Embed:
    """Render :meth:`ApiCache.get_stats` output as an embed."""
    embed = discord.Embed(
        title="🗄️ API Cache Statistics",
        color=discord.Color.blurple(),
    )
    embed.add_field(name="Entries", value=f"{stats['size']} / {stats['max_size']}", inline=True)
    embed.add_field(name="Hit Rate", value=str(stats["hit_rate"]), inline=True)
    embed.add_field(name="Hits", value=str(stats["hits"]), inline=True)
    embed.add_field(name="Misses", value=str(stats["misses"]), inline=True)
    embed.add_field(name="Evictions", value=str(stats["evictions"]), inline=True)
    embed.add_field(name="Expirations", value=str(stats["expirations"]), inline=True)
    return embed


class CacheCog(commands.Cog):
    """Administrator commands for inspecting and flushing the API cache."""

    cache = discord.SlashCommandGroup(
        "cache",
        "Inspect and manage the API response cache",
        default_member_permissions=discord.Permissions(administrator=True),
    )

    def __init__(self, discord_bot_instance, store: ApiCache | None = None):
        self.discord_bot_instance = discord_bot_instance
        self.store = store if store is not None else api_cache
        logger.info("[CACHE CMDS] Cache cog loaded")

    @staticmethod
    def _is_admin(application_context: discord.ApplicationContext) -> bool:
        permissions = getattr(application_context.user, "guild_permissions", None)
        return bool(permissions and permissions.administrator)

    async def _check_permissions(self, application_context: discord.ApplicationContext) -> bool:
        if not self._is_admin(application_context):
            await application_context.respond("You need the Administrator permission.", ephemeral=True)
            return False
        return True

    @cache.command(name="stats", description="Show API cache statistics")
    async def stats(self, application_context: discord.ApplicationContext) -> None:
        if not await self._check_permissions(application_context):
            return
        try:
            await application_context.defer(ephemeral=True)
            embed = build_cache_stats_embed(self.store.get_stats())
            await application_context.send_followup(embed=embed, ephemeral=True)
        except Exception as e:
            logger.error(f"Error in cache stats command: {e}")
            await application_context.send_followup(content=f"❌ Error: {e}", ephemeral=True)

    @cache.command(name="clear", description="Clear the API cache, or only keys matching a pattern")
    async def clear(
        self,
        application_context: discord.ApplicationContext,
        pattern: Option(str, "Key prefix, or /regex/ to match keys", required=False, default=None),  # type: ignore
    ) -> None:
        """Clear everything, or invalidate entries matching ``pattern``."""
        if not await self._check_permissions(application_context):
            return
        try:
            await application_context.defer(ephemeral=True)

            try:
                compiled = parse_invalidation_pattern(pattern)
            except re.error as exc:
                await application_context.send_followup(content=f"❌ Invalid regular expression: {exc}", ephemeral=True)
                return

            if compiled is not None:
                removed = self.store.invalidate(compiled)
                logger.info("[CACHE CMDS] %s invalidated %d entries matching %r", application_context.user, removed, pattern)
                description = f"Removed {removed} entries matching `{pattern}`."
            else:
                removed = self.store.clear()
                logger.info("[CACHE CMDS] %s cleared the cache (%d entries)", application_context.user, removed)
                description = f"Cache cleared ({removed} entries removed)."

            embed = discord.Embed(
                title="✅ Cache Cleared",
                description=description,
                color=discord.Color.green(),
            )
            await application_context.send_followup(embed=embed, ephemeral=True)
        except Exception as e:
            logger.error(f"Error in cache clear command: {e}")
            await application_context.send_followup(content=f"❌ Error: {e}", ephemeral=True)

    @cache.command(name="reset_stats", description="Reset API cache statistics counters")
    async def reset_stats(self, application_context: discord.ApplicationContext) -> None:
        if not await self._check_permissions(application_context):
            return
        try:
            await application_context.defer(ephemeral=True)
            self.store.reset_stats()
            logger.info("[CACHE CMDS] %s reset cache statistics", application_context.user)
            embed = discord.Embed(
                title="✅ Statistics Reset",
                description="Cache hit/miss/eviction/expiration counters were reset.",
                color=discord.Color.green(),
            )
            await application_context.send_followup(embed=embed, ephemeral=True)
        except Exception as e:
            logger.error(f"Error in cache reset_stats command: {e}")
            await application_context.send_followup(content=f"❌ Error: {e}", ephemeral=True)


def setup(discord_bot_instance) -> None:
    """Register the cache cog with the bot."""
    discord_bot_instance.add_cog(CacheCog(discord_bot_instance))
