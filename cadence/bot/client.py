"""
Discord client hosting the progression engine.

The engine is wired once the guild cache is available: tier roles come from
the configured guild and notices go out as direct messages. Activity
sources reach the engine through ``CadenceBot.engine``.
"""

from __future__ import annotations

from typing import Optional

import discord

from cadence.bot.markers import DiscordMarkerGateway
from cadence.bot.messenger import DiscordMessenger
from cadence.bot.sync import MarkerSyncScheduler
from cadence.core.config.progression import ProgressionSettings
from cadence.core.logging.logger import get_logger
from cadence.modules.progression.engine import ProgressionEngine

logger = get_logger(__name__)


class CadenceBot(discord.Client):
    def __init__(self, settings: ProgressionSettings, guild_id: int) -> None:
        intents = discord.Intents.default()
        intents.members = True
        super().__init__(intents=intents)

        self.settings = settings
        self.guild_id = guild_id
        self.engine: Optional[ProgressionEngine] = None
        self.scheduler: Optional[MarkerSyncScheduler] = None

    async def _resolve_guild(self) -> discord.Guild:
        guild = self.get_guild(self.guild_id)
        if guild is None:
            guild = await self.fetch_guild(self.guild_id)
        return guild

    async def on_ready(self) -> None:
        # on_ready fires again after reconnects
        if self.engine is not None:
            return

        guild = await self._resolve_guild()
        self.engine = ProgressionEngine.build(
            self.settings,
            DiscordMarkerGateway(guild),
            DiscordMessenger(self),
        )
        self.scheduler = MarkerSyncScheduler(self, self.engine, guild_id=guild.id)
        self.scheduler.start()

        logger.info(
            "Progression engine ready",
            extra={"target_guild_id": guild.id, "bot_user": str(self.user)},
        )

    async def close(self) -> None:
        if self.scheduler is not None:
            self.scheduler.stop()
        if self.engine is not None:
            await self.engine.drain_notifications()
        await super().close()
