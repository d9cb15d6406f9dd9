"""
Guild-role implementation of the marker gateway.

Marker ids are role ids (as strings). Members are resolved from the guild
cache first and fetched over HTTP on a miss.
"""

from __future__ import annotations

from typing import Optional

import discord

from cadence.core.logging.logger import get_logger

logger = get_logger(__name__)


class MarkerUnavailableError(LookupError):
    """The member or role a marker operation needs does not exist."""


class DiscordMarkerGateway:
    def __init__(self, guild: discord.Guild) -> None:
        self.guild = guild

    async def _member(self, user_id: int) -> discord.Member:
        member = self.guild.get_member(user_id)
        if member is not None:
            return member
        try:
            return await self.guild.fetch_member(user_id)
        except discord.NotFound as exc:
            raise MarkerUnavailableError(
                f"member {user_id} is not in guild {self.guild.id}"
            ) from exc

    def _role(self, marker_id: str) -> Optional[discord.Role]:
        try:
            return self.guild.get_role(int(marker_id))
        except (TypeError, ValueError):
            return None

    def _require_role(self, marker_id: str) -> discord.Role:
        role = self._role(marker_id)
        if role is None:
            raise MarkerUnavailableError(
                f"role {marker_id} does not exist in guild {self.guild.id}"
            )
        return role

    async def has_marker(self, user_id: int, marker_id: str) -> bool:
        role = self._role(marker_id)
        if role is None:
            return False
        member = await self._member(user_id)
        return member.get_role(role.id) is not None

    async def add_marker(self, user_id: int, marker_id: str, reason: str) -> None:
        role = self._require_role(marker_id)
        member = await self._member(user_id)
        if member.get_role(role.id) is not None:
            return
        await member.add_roles(role, reason=reason)
        logger.debug(
            "Role granted",
            extra={"target_user_id": user_id, "role_id": role.id, "reason": reason},
        )

    async def remove_marker(self, user_id: int, marker_id: str, reason: str) -> None:
        role = self._role(marker_id)
        if role is None:
            return
        member = await self._member(user_id)
        if member.get_role(role.id) is None:
            return
        await member.remove_roles(role, reason=reason)
        logger.debug(
            "Role removed",
            extra={"target_user_id": user_id, "role_id": role.id, "reason": reason},
        )
