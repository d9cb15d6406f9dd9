"""
Input validation for values entering the progression engine.

User ids, XP gains, counter overwrites, page sizes and track names are
converted to their proper type here or rejected with a ``ValidationError``
naming the offending field. Rejections are logged at debug level.
"""

from __future__ import annotations

from typing import Any, NoReturn, Optional, Sequence

from cadence.core.logging.logger import get_logger
from cadence.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)

# Snowflakes are stored in a signed BIGINT column
MAX_SNOWFLAKE = 2**63 - 1


def _reject(field_name: str, value: Any, reason: str) -> NoReturn:
    logger.debug(
        "Input rejected",
        extra={"field_name": field_name, "raw_value": repr(value), "reason": reason},
    )
    raise ValidationError(field_name, reason)


def _as_int(value: Any, field_name: str) -> int:
    if value is None:
        _reject(field_name, value, "Value is required")
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        _reject(field_name, value, f"Expected a whole number, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        _reject(field_name, value, f"Expected a whole number, got {value!r}")


class InputValidator:
    """Static checks; each returns the converted value or raises ``ValidationError``."""

    @staticmethod
    def validate_integer(
        value: Any,
        field_name: str,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
        allow_zero: bool = True,
    ) -> int:
        """
        Whole number within optional inclusive bounds.

        Numeric strings and integral floats are accepted; booleans are not.
        """
        number = _as_int(value, field_name)

        if number == 0 and not allow_zero:
            _reject(field_name, number, "Must not be zero")
        if min_value is not None and number < min_value:
            _reject(field_name, number, f"Must be >= {min_value}, got {number}")
        if max_value is not None and number > max_value:
            _reject(field_name, number, f"Must be <= {max_value}, got {number}")
        return number

    @classmethod
    def validate_positive_integer(
        cls, value: Any, field_name: str, max_value: Optional[int] = None
    ) -> int:
        return cls.validate_integer(value, field_name, 1, max_value, allow_zero=False)

    @classmethod
    def validate_non_negative_integer(
        cls, value: Any, field_name: str, max_value: Optional[int] = None
    ) -> int:
        return cls.validate_integer(value, field_name, 0, max_value)

    @classmethod
    def validate_discord_id(cls, value: Any, field_name: str = "user_id") -> int:
        return cls.validate_positive_integer(value, field_name, MAX_SNOWFLAKE)

    @staticmethod
    def validate_choice(value: Any, field_name: str, valid_choices: Sequence[str]) -> str:
        """
        Case-insensitive membership check; enum members are compared by value.

        Returns the lowercased choice.
        """
        if value is None:
            _reject(field_name, value, "Value is required")

        choice = str(getattr(value, "value", value)).strip().lower()
        if choice not in {option.lower() for option in valid_choices}:
            _reject(field_name, value, f"Must be one of: {', '.join(valid_choices)}")
        return choice
