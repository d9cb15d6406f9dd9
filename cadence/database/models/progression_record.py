"""
ProgressionRecord: per-user XP counters and derived tiers.
Schema only.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Index, Integer, false
from sqlalchemy.orm import Mapped, mapped_column

from cadence.core.database.base import Base, IdMixin, TimestampMixin


class ProgressionRecord(Base, IdMixin, TimestampMixin):
    """
    One row per user, global (not guild-scoped).

    The three tier columns are always written together and always equal
    the tiers derived from the counters under the active threshold table.
    """

    __tablename__ = "progression_records"
    __table_args__ = (
        CheckConstraint("message_xp >= 0", name="ck_progression_message_xp_non_negative"),
        CheckConstraint("voice_xp >= 0", name="ck_progression_voice_xp_non_negative"),
        CheckConstraint("message_tier >= 1", name="ck_progression_message_tier_min"),
        CheckConstraint("voice_tier >= 1", name="ck_progression_voice_tier_min"),
        CheckConstraint("combined_tier >= 1", name="ck_progression_combined_tier_min"),
        Index("ix_progression_combined_tier", "combined_tier"),
    )

    user_id: Mapped[int] = mapped_column(
        BigInteger, nullable=False, unique=True, index=True
    )

    message_xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    voice_xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")

    message_tier: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    voice_tier: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    combined_tier: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")

    notifications_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    @property
    def total_xp(self) -> int:
        return self.message_xp + self.voice_xp

    def __repr__(self) -> str:
        return (
            f"<ProgressionRecord user_id={self.user_id} "
            f"message_xp={self.message_xp} voice_xp={self.voice_xp} "
            f"tiers=({self.message_tier}, {self.voice_tier}, {self.combined_tier})>"
        )
