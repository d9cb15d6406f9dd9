"""
Unit tests for input validation and domain exceptions.
"""

import pytest

from cadence.core.validation.input_validator import InputValidator
from cadence.modules.progression.tracks import OrderKey, Track
from cadence.modules.shared.exceptions import (
    ErrorSeverity,
    NotificationError,
    NotFoundError,
    ReconciliationError,
    StoreError,
    ValidationError,
    is_transient_error,
    should_alert,
)


@pytest.mark.unit
class TestInputValidator:
    """Test integer and id validation."""

    def test_accepts_numeric_strings(self):
        assert InputValidator.validate_non_negative_integer("42", "xp_gain") == 42

    def test_rejects_negative(self):
        with pytest.raises(ValidationError) as exc_info:
            InputValidator.validate_non_negative_integer(-1, "xp_gain")
        assert exc_info.value.field == "xp_gain"

    def test_rejects_booleans(self):
        """True is an int in Python but never a valid amount."""
        with pytest.raises(ValidationError):
            InputValidator.validate_integer(True, "xp_gain")

    def test_rejects_fractional_floats(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_integer(1.5, "xp_gain")
        assert InputValidator.validate_integer(2.0, "xp_gain") == 2

    def test_discord_id_bounds(self):
        assert InputValidator.validate_discord_id(123456789012345678) == 123456789012345678
        with pytest.raises(ValidationError):
            InputValidator.validate_discord_id(0)
        with pytest.raises(ValidationError):
            InputValidator.validate_discord_id(2**63)

    def test_choice_is_case_insensitive(self):
        assert InputValidator.validate_choice("VOICE", "track", ["message", "voice"]) == "voice"


@pytest.mark.unit
class TestTrackParsing:
    """Test track and order key parsing."""

    def test_parse_track(self):
        assert Track.parse("message") is Track.MESSAGE
        assert Track.parse(Track.VOICE) is Track.VOICE

    def test_unknown_track(self):
        with pytest.raises(ValidationError) as exc_info:
            Track.parse("reactions")
        assert exc_info.value.field == "track"

    def test_track_fields(self):
        assert Track.MESSAGE.counter_field == "message_xp"
        assert Track.VOICE.tier_field == "voice_tier"

    def test_order_key_aliases(self):
        assert OrderKey.parse("totalXP") is OrderKey.TOTAL_XP
        assert OrderKey.parse("combined_tier") is OrderKey.COMBINED_TIER

    def test_unknown_order_key(self):
        with pytest.raises(ValidationError):
            OrderKey.parse("reputation")


@pytest.mark.unit
class TestDomainExceptions:
    """Test exception metadata."""

    def test_store_error_is_retryable_and_alerts(self):
        error = StoreError("apply_delta", "connection reset", user_id=7)

        assert error.error_code == "STORE_ERROR"
        assert is_transient_error(error) is True
        assert should_alert(error) is True
        assert error.details["user_id"] == 7

    def test_reconciliation_error_code(self):
        error = ReconciliationError(7, "add", "M1", "Forbidden")

        assert error.error_code == "RECONCILIATION_ADD_FAILED"
        assert error.severity is ErrorSeverity.WARNING
        assert should_alert(error) is False

    def test_not_found_to_dict(self):
        payload = NotFoundError("ProgressionRecord", 7).to_dict()

        assert payload["error_code"] == "PROGRESSIONRECORD_NOT_FOUND"
        assert payload["details"]["identifier"] == 7

    def test_notification_error_not_retryable(self):
        assert is_transient_error(NotificationError(7, "closed")) is False

    def test_plain_exceptions(self):
        assert is_transient_error(RuntimeError()) is False
        assert should_alert(RuntimeError()) is True
