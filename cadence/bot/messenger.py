"""
Direct-message implementation of the messenger gateway.

Tier-up notices are sent as a single embed. Closed DMs and unknown users
report ``False``; other HTTP failures propagate to the notifier.
"""

from __future__ import annotations

from typing import Optional

import discord

from cadence.core.config.config import Config

EMBED_TITLE = "Tier Up!"
EMBED_DESCRIPTION_LIMIT = 4096


class DiscordMessenger:
    def __init__(self, client: discord.Client, color: Optional[int] = None) -> None:
        self.client = client
        self.color = color if color is not None else Config.EMBED_COLOR_LEVEL_UP

    def build_embed(self, content: str) -> discord.Embed:
        return discord.Embed(
            title=EMBED_TITLE,
            description=content[:EMBED_DESCRIPTION_LIMIT],
            color=self.color,
            timestamp=discord.utils.utcnow(),
        )

    async def send_direct_message(self, user_id: int, content: str) -> bool:
        try:
            user = self.client.get_user(user_id) or await self.client.fetch_user(user_id)
            await user.send(embed=self.build_embed(content))
        except (discord.Forbidden, discord.NotFound):
            return False
        return True
