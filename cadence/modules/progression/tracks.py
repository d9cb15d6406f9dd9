"""
Activity tracks and ranking keys.

Message and voice activity accumulate XP independently but are handled by
the same engine code; a ``Track`` names which counter and tier column an
event touches. ``OrderKey`` names the column a leaderboard is sorted by.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class Track(str, Enum):
    MESSAGE = "message"
    VOICE = "voice"

    @property
    def counter_field(self) -> str:
        return f"{self.value}_xp"

    @property
    def tier_field(self) -> str:
        return f"{self.value}_tier"

    @property
    def label(self) -> str:
        return "Messages" if self is Track.MESSAGE else "Voice"

    @classmethod
    def parse(cls, value: Any) -> "Track":
        """
        Accept a ``Track`` or its string value (case-insensitive).

        Raises ValidationError for anything else.
        """
        if isinstance(value, cls):
            return value

        from cadence.core.validation.input_validator import InputValidator

        choice = InputValidator.validate_choice(
            value,
            field_name="track",
            valid_choices=[track.value for track in cls],
        )
        return cls(choice)


class OrderKey(str, Enum):
    """Columns the leaderboard can be ranked by."""

    TOTAL_XP = "total_xp"
    MESSAGE_XP = "message_xp"
    VOICE_XP = "voice_xp"
    COMBINED_TIER = "combined_tier"

    @classmethod
    def parse(cls, value: Any) -> "OrderKey":
        if isinstance(value, cls):
            return value

        from cadence.core.validation.input_validator import InputValidator

        # camelCase aliases used by the command layer
        aliases = {
            "totalxp": cls.TOTAL_XP.value,
            "messagexp": cls.MESSAGE_XP.value,
            "voicexp": cls.VOICE_XP.value,
            "combinedtier": cls.COMBINED_TIER.value,
        }
        raw = str(getattr(value, "value", value)).strip().lower() if value is not None else value
        if raw in aliases:
            raw = aliases[raw]

        choice = InputValidator.validate_choice(
            raw,
            field_name="order_key",
            valid_choices=[key.value for key in cls],
        )
        return cls(choice)
