"""
Periodic tier-role sync for the configured guild.

Every few minutes the guild named by ``DISCORD_GUILD_ID`` is resolved (from
the client cache, then over HTTP), wrapped in a ``DiscordMarkerGateway`` and
every stored member is reconciled against their combined tier. This catches
roles that drifted while a grant or removal failed, or while the bot was
offline.

A run that cannot resolve the guild, or whose store reads fail, is logged
and skipped; the loop keeps running.
"""

from __future__ import annotations

from typing import Optional

import discord
from discord.ext import tasks

from cadence.bot.markers import DiscordMarkerGateway
from cadence.core.config.config import Config
from cadence.core.logging.logger import LogContext, get_logger
from cadence.modules.progression.engine import ProgressionEngine
from cadence.modules.progression.models import MarkerSyncSummary
from cadence.modules.shared.exceptions import StoreError

logger = get_logger(__name__)

SYNC_INTERVAL_MINUTES = 5


class MarkerSyncScheduler:
    """
    Runs ``ProgressionEngine.sync_markers`` on a fixed interval.

    Args:
        client: Connected discord.py client
        engine: Progression engine whose store lists the members
        guild_id: Guild holding the tier roles (defaults to ``DISCORD_GUILD_ID``)
        minutes: Interval between runs
    """

    def __init__(
        self,
        client: discord.Client,
        engine: ProgressionEngine,
        guild_id: Optional[int] = None,
        minutes: float = SYNC_INTERVAL_MINUTES,
    ) -> None:
        self.client = client
        self.engine = engine
        self.guild_id = guild_id if guild_id is not None else Config.DISCORD_GUILD_ID
        self.periodic_sync.change_interval(minutes=minutes)

    def start(self) -> bool:
        """Start the loop. Returns False when no guild is configured."""
        if self.guild_id is None:
            logger.warning("DISCORD_GUILD_ID is not set; periodic role sync disabled")
            return False
        if not self.periodic_sync.is_running():
            self.periodic_sync.start()
            logger.info(
                "Periodic role sync scheduled",
                extra={"target_guild_id": self.guild_id, "interval_minutes": self.periodic_sync.minutes},
            )
        return True

    def stop(self) -> None:
        self.periodic_sync.cancel()

    async def _resolve_guild(self) -> Optional[discord.Guild]:
        guild_id = self.guild_id
        if guild_id is None:
            return None

        guild = self.client.get_guild(guild_id)
        if guild is not None:
            return guild

        try:
            guild = await self.client.fetch_guild(guild_id)
        except discord.HTTPException as exc:
            logger.error(
                "Could not fetch guild for role sync",
                extra={"target_guild_id": guild_id, "error": str(exc)},
            )
            return None

        logger.info("Fetched guild for role sync", extra={"target_guild_id": guild.id})
        return guild

    async def run_once(self) -> Optional[MarkerSyncSummary]:
        """
        One sync pass over every stored member.

        Returns None when the guild could not be resolved.
        """
        guild = await self._resolve_guild()
        if guild is None:
            return None

        async with LogContext(guild_id=guild.id, operation="periodic_role_sync"):
            summary = await self.engine.sync_markers(gateway=DiscordMarkerGateway(guild))
            logger.info(
                "Periodic role sync completed",
                extra={
                    "checked": summary.checked,
                    "added": summary.added,
                    "removed": summary.removed,
                    "failed": summary.failed,
                },
            )
        return summary

    @tasks.loop(minutes=SYNC_INTERVAL_MINUTES)
    async def periodic_sync(self) -> None:
        try:
            await self.run_once()
        except StoreError as exc:
            logger.error(
                "Periodic role sync failed",
                extra={"error_code": exc.error_code, "error": exc.message},
            )

    @periodic_sync.before_loop
    async def _before_periodic_sync(self) -> None:
        await self.client.wait_until_ready()
