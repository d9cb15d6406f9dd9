"""
Leaderboard Service

Purpose
-------
Ranked listings of users by XP or tier for command and UI layers.

Domain
------
- Order by total XP, message XP, voice XP or combined tier, descending
- Ties keep the order in which users were first recorded
- Ranks are 1-based and dense over the returned page

Read-only: every query runs in ``DatabaseService.get_session()`` through
the progression store.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from cadence.core.logging.logger import get_logger
from cadence.modules.progression.store import ProgressionStore
from cadence.modules.progression.tracks import OrderKey
from cadence.modules.shared.base_service import BaseService
from cadence.modules.shared.exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from cadence.core.config.progression import ProgressionSettings

MAX_LIMIT = 100


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    user_id: int
    message_xp: int
    voice_xp: int
    total_xp: int
    message_tier: int
    voice_tier: int
    combined_tier: int

    def value_for(self, order_key: OrderKey) -> int:
        return getattr(self, order_key.value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rank": self.rank,
            "user_id": self.user_id,
            "message_xp": self.message_xp,
            "voice_xp": self.voice_xp,
            "total_xp": self.total_xp,
            "message_tier": self.message_tier,
            "voice_tier": self.voice_tier,
            "combined_tier": self.combined_tier,
        }


class LeaderboardService(BaseService):
    """
    Public Methods
    --------------
    - list_top_users() -> Top users for one ordering key
    """

    def __init__(
        self,
        store: ProgressionStore,
        settings: ProgressionSettings,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(settings, logger or get_logger(__name__))
        self.store = store

    async def list_top_users(
        self,
        limit: Any = 10,
        order_key: Any = OrderKey.TOTAL_XP,
    ) -> List[LeaderboardEntry]:
        """
        Top ``limit`` users, descending by ``order_key``.

        Args:
            limit: Number of entries, 1 to 100
            order_key: ``OrderKey`` or one of ``total_xp``, ``message_xp``,
                ``voice_xp``, ``combined_tier`` (camelCase also accepted)

        Raises:
            ValidationError: If limit or order_key is invalid
            StoreError: If the query fails
        """
        limit = self.validate_positive_int(limit, "limit")
        if limit > MAX_LIMIT:
            raise ValidationError("limit", f"Limit cannot exceed {MAX_LIMIT}")
        key = OrderKey.parse(order_key)

        self.log_operation("list_top_users", limit=limit, order_key=key.value)

        snapshots = await self.store.top(limit, key)

        return [
            LeaderboardEntry(
                rank=position,
                user_id=snapshot.user_id,
                message_xp=snapshot.message_xp,
                voice_xp=snapshot.voice_xp,
                total_xp=snapshot.total_xp,
                message_tier=snapshot.message_tier,
                voice_tier=snapshot.voice_tier,
                combined_tier=snapshot.combined_tier,
            )
            for position, snapshot in enumerate(snapshots, start=1)
        ]
