"""
Unit tests for the tier-up notifier.
"""

import pytest

from cadence.core.config.progression import ProgressionSettings
from cadence.modules.progression.models import TransitionScope
from cadence.modules.progression.notifier import Notifier
from cadence.modules.progression.tracks import Track


@pytest.fixture
def notifier(messenger):
    settings = ProgressionSettings(
        thresholds=(100, 300),
        notification_template="Tier {tier} reached in {track}",
    )
    return Notifier(messenger, settings)


@pytest.mark.unit
class TestRender:
    """Test message rendering."""

    def test_combined_scope_uses_overall_label(self, notifier):
        assert notifier.render(3, Track.VOICE, TransitionScope.COMBINED) == (
            "Tier 3 reached in Overall"
        )

    def test_track_scope_uses_track_label(self, notifier):
        assert notifier.render(2, Track.MESSAGE, TransitionScope.TRACK) == (
            "Tier 2 reached in Messages"
        )


@pytest.mark.unit
@pytest.mark.asyncio
class TestNotify:
    """Test delivery outcomes."""

    async def test_delivered(self, notifier, messenger):
        delivered = await notifier.notify(42, 2, Track.VOICE, TransitionScope.TRACK)

        assert delivered is True
        messenger.send_direct_message.assert_awaited_once_with(42, "Tier 2 reached in Voice")

    async def test_refused(self, notifier, messenger, caplog):
        messenger.send_direct_message.return_value = False

        delivered = await notifier.notify(42, 2, Track.VOICE)

        assert delivered is False
        assert any(r.getMessage() == "Tier-up notification failed" for r in caplog.records)

    async def test_transport_error_is_contained(self, notifier, messenger):
        messenger.send_direct_message.side_effect = ConnectionError("gateway closed")

        assert await notifier.notify(42, 2, Track.MESSAGE) is False

    async def test_bad_template_is_contained(self, messenger):
        settings = ProgressionSettings(notification_template="Tier {level}")
        notifier = Notifier(messenger, settings)

        assert await notifier.notify(42, 2, Track.MESSAGE) is False
        messenger.send_direct_message.assert_not_awaited()
