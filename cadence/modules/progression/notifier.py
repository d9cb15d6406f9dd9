"""
Tier-up notifier.

Best effort only: a notice that cannot be rendered or delivered is logged
as a ``NotificationError`` and dropped. Nothing here raises, retries, or
touches stored progression.
"""

from __future__ import annotations

from logging import Logger
from typing import Optional

from cadence.core.config.progression import ProgressionSettings
from cadence.core.logging.logger import get_logger
from cadence.modules.progression.gateways import Messenger
from cadence.modules.progression.models import TransitionScope
from cadence.modules.progression.tracks import Track
from cadence.modules.shared.base_service import BaseService
from cadence.modules.shared.exceptions import NotificationError

COMBINED_LABEL = "Overall"


class Notifier(BaseService):
    def __init__(
        self,
        messenger: Messenger,
        settings: ProgressionSettings,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(settings, logger or get_logger(__name__))
        self.messenger = messenger

    def render(self, new_tier: int, track: Track, scope: str = TransitionScope.COMBINED) -> str:
        label = COMBINED_LABEL if scope == TransitionScope.COMBINED else track.label
        return self.settings.notification_template.format(tier=new_tier, track=label)

    async def notify(
        self,
        user_id: int,
        new_tier: int,
        track: Track,
        scope: str = TransitionScope.COMBINED,
    ) -> bool:
        """
        Send the tier-up notice. Returns True if it was delivered.
        """
        try:
            content = self.render(new_tier, track, scope)
            delivered = await self.messenger.send_direct_message(user_id, content)
        except Exception as exc:
            self._report(NotificationError(user_id, f"{type(exc).__name__}: {exc}"))
            return False

        if not delivered:
            self._report(NotificationError(user_id, "direct message was refused"))
            return False

        self.log.debug(
            "Tier-up notification sent",
            extra={
                "target_user_id": user_id,
                "tier": new_tier,
                "track": track.value,
                "scope": scope,
            },
        )
        return True

    def _report(self, error: NotificationError) -> None:
        self.log.warning(
            "Tier-up notification failed",
            extra={
                "error_code": error.error_code,
                "error": error.message,
                "details": error.details,
                "target_user_id": error.user_id,
            },
        )
