"""
Unit tests for ProgressionEngine.

Tests activity recording and transition detection, marker reconciliation
on transitions, best-effort notifications and the administrative
operations, against a SQLite database and in-memory gateways.
"""

import pytest

from cadence.modules.progression.engine import ProgressionEngine, detect_transition
from cadence.modules.progression.models import (
    DeltaOutcome,
    ProgressionSnapshot,
    TransitionScope,
)
from cadence.modules.progression.tracks import Track
from cadence.modules.shared.exceptions import NotFoundError, StoreError, ValidationError

USER_ID = 555


@pytest.mark.unit
class TestDetectTransition:
    """Test transition classification."""

    def _outcome(self, before_tiers, after_tiers):
        before = ProgressionSnapshot(
            user_id=USER_ID,
            message_tier=before_tiers[0],
            voice_tier=before_tiers[1],
            combined_tier=before_tiers[2],
        )
        after = ProgressionSnapshot(
            user_id=USER_ID,
            message_tier=after_tiers[0],
            voice_tier=after_tiers[1],
            combined_tier=after_tiers[2],
        )
        return DeltaOutcome(before=before, after=after)

    def test_combined_increase_takes_priority(self):
        result = detect_transition(self._outcome((1, 1, 1), (2, 1, 2)), Track.MESSAGE)

        assert result.transitioned
        assert result.scope == TransitionScope.COMBINED
        assert (result.old_tier, result.new_tier) == (1, 2)

    def test_track_only_increase(self):
        result = detect_transition(self._outcome((1, 1, 3), (1, 2, 3)), Track.VOICE)

        assert result.transitioned
        assert result.scope == TransitionScope.TRACK
        assert (result.old_tier, result.new_tier) == (1, 2)

    def test_other_track_increase_ignored(self):
        """Only the updated track's tier counts."""
        result = detect_transition(self._outcome((1, 1, 3), (2, 1, 3)), Track.VOICE)
        assert not result.transitioned

    def test_no_change(self):
        result = detect_transition(self._outcome((2, 1, 2), (2, 1, 2)), Track.MESSAGE)

        assert not result.transitioned
        assert result.scope is None
        assert result.old_tier == result.new_tier == 2


@pytest.mark.unit
@pytest.mark.database
@pytest.mark.asyncio
class TestRecordActivity:
    """Test the activity path end to end."""

    async def test_message_leveling(self, make_engine):
        engine = make_engine(thresholds=[100, 300, 600], markers={})

        result = await engine.record_activity(USER_ID, "message", 150)

        assert result.transitioned is True
        assert result.new_tier == 2
        assert result.snapshot.message_xp == 150
        assert result.snapshot.message_tier == 2

    async def test_combined_tier_unchanged(self, make_engine):
        """Voice crosses nothing and combined was already tier 2."""
        engine = make_engine(thresholds=[100, 300], markers={})
        await engine.record_activity(USER_ID, Track.MESSAGE, 90)
        await engine.record_activity(USER_ID, Track.VOICE, 50)

        result = await engine.record_activity(USER_ID, Track.VOICE, 20)

        assert result.transitioned is False
        assert result.snapshot.voice_xp == 70
        assert result.snapshot.tiers() == (1, 1, 2)
        assert result.reconciliation is None
        assert result.reconciliation_succeeded is None

    async def test_transition_reconciles_markers(self, engine, marker_gateway):
        result = await engine.record_activity(USER_ID, Track.MESSAGE, 300)

        assert result.new_tier == 3
        assert result.reconciliation_succeeded is True
        assert marker_gateway.held[USER_ID] == {"M3"}

    async def test_marker_failure_does_not_fail_the_update(self, engine, marker_gateway):
        marker_gateway.fail("add", "M1")

        result = await engine.record_activity(USER_ID, Track.MESSAGE, 150)

        assert result.transitioned is True
        assert result.reconciliation_succeeded is False
        assert result.reconciliation_errors[0].action == "add"
        assert (await engine.store.get(USER_ID)).message_xp == 150

    async def test_reconciler_crash_is_contained(self, engine, mocker):
        mocker.patch.object(
            engine.reconciler, "reconcile", side_effect=RuntimeError("gateway gone")
        )

        result = await engine.record_activity(USER_ID, Track.VOICE, 150)

        assert result.transitioned is True
        assert result.reconciliation_succeeded is False

    async def test_zero_gain_writes_nothing(self, engine, marker_gateway):
        result = await engine.record_activity(USER_ID, Track.MESSAGE, 0)

        assert result.transitioned is False
        assert result.snapshot.total_xp == 0
        assert await engine.store.get(USER_ID) is None
        assert marker_gateway.calls == []

    async def test_zero_gain_returns_current_state(self, engine):
        await engine.record_activity(USER_ID, Track.MESSAGE, 120)

        result = await engine.record_activity(USER_ID, Track.MESSAGE, 0)

        assert result.snapshot.message_xp == 120
        assert result.old_tier == result.new_tier == 2

    async def test_negative_gain_rejected(self, engine):
        with pytest.raises(ValidationError):
            await engine.record_activity(USER_ID, Track.MESSAGE, -1)

    async def test_unknown_track_rejected(self, engine):
        with pytest.raises(ValidationError):
            await engine.record_activity(USER_ID, "reactions", 10)

    async def test_store_error_propagates_without_side_effects(
        self, engine, marker_gateway, messenger, mocker
    ):
        mocker.patch.object(
            engine.store,
            "apply_delta",
            side_effect=StoreError("apply_delta", "disk full", user_id=USER_ID),
        )

        with pytest.raises(StoreError):
            await engine.record_activity(USER_ID, Track.MESSAGE, 500)

        assert marker_gateway.calls == []
        assert engine.pending_notifications == 0


@pytest.mark.unit
@pytest.mark.database
@pytest.mark.asyncio
class TestNotifications:
    """Test best-effort tier-up notices."""

    async def test_not_sent_when_disabled(self, engine, messenger):
        await engine.record_activity(USER_ID, Track.MESSAGE, 150)
        await engine.drain_notifications()

        messenger.send_direct_message.assert_not_awaited()

    async def test_sent_when_enabled(self, engine, messenger):
        await engine.record_activity(USER_ID, Track.MESSAGE, 10)
        await engine.set_notifications(USER_ID, True)

        await engine.record_activity(USER_ID, Track.MESSAGE, 150)
        await engine.drain_notifications()

        messenger.send_direct_message.assert_awaited_once_with(
            USER_ID, "Tier 2 reached in Overall"
        )

    async def test_track_scope_label(self, engine, messenger):
        await engine.record_activity(USER_ID, Track.MESSAGE, 350)
        await engine.set_notifications(USER_ID, True)

        # Voice reaches tier 2 while combined stays at tier 3
        await engine.record_activity(USER_ID, Track.VOICE, 100)
        await engine.drain_notifications()

        messenger.send_direct_message.assert_awaited_once_with(
            USER_ID, "Tier 2 reached in Voice"
        )

    async def test_delivery_failure_is_invisible(self, engine, messenger):
        messenger.send_direct_message.side_effect = ConnectionError("closed")
        await engine.record_activity(USER_ID, Track.MESSAGE, 10)
        await engine.set_notifications(USER_ID, True)

        result = await engine.record_activity(USER_ID, Track.MESSAGE, 150)
        await engine.drain_notifications()

        assert result.transitioned is True
        assert engine.pending_notifications == 0

    async def test_without_messenger(self, make_engine):
        engine = make_engine(with_messenger=False)
        await engine.record_activity(USER_ID, Track.MESSAGE, 10)
        await engine.set_notifications(USER_ID, True)

        result = await engine.record_activity(USER_ID, Track.MESSAGE, 150)

        assert result.transitioned is True
        assert engine.pending_notifications == 0

    async def test_notice_goes_to_given_notifier(self, engine, mocker):
        notifier = mocker.Mock()
        notifier.notify = mocker.AsyncMock(return_value=True)

        engine._schedule_notification(notifier, USER_ID, 4, Track.VOICE, None)
        await engine.drain_notifications()

        notifier.notify.assert_awaited_once_with(
            USER_ID, 4, Track.VOICE, TransitionScope.COMBINED
        )

    async def test_toggle(self, engine):
        await engine.record_activity(USER_ID, Track.MESSAGE, 10)

        snapshot = await engine.toggle_notifications(USER_ID)

        assert snapshot.notifications_enabled is True

    async def test_toggle_unknown_user(self, engine):
        with pytest.raises(NotFoundError):
            await engine.toggle_notifications(USER_ID)


@pytest.mark.unit
@pytest.mark.database
@pytest.mark.asyncio
class TestQueriesAndAdministration:
    """Test progression info, resets, recalculation and marker sync."""

    async def test_progression_info(self, engine):
        await engine.record_activity(USER_ID, Track.MESSAGE, 200)
        await engine.record_activity(USER_ID, Track.VOICE, 150)

        info = await engine.get_progression_info(USER_ID)

        assert info.total_xp == 350
        assert (info.message_tier, info.voice_tier, info.combined_tier) == (2, 2, 3)
        assert info.current_tier_floor_xp == 300
        assert info.next_tier_xp == 600
        assert info.xp_to_next_tier == 250
        assert info.to_dict()["combined_tier"] == 3

    async def test_progression_info_unknown_user(self, engine):
        assert await engine.get_progression_info(USER_ID) is None

    async def test_progression_info_top_tier(self, engine):
        await engine.record_activity(USER_ID, Track.MESSAGE, 5000)

        info = await engine.get_progression_info(USER_ID)

        assert info.next_tier_xp is None
        assert info.xp_to_next_tier is None

    async def test_reset_moves_markers_down(self, engine, marker_gateway, messenger):
        await engine.record_activity(USER_ID, Track.MESSAGE, 10)
        await engine.set_notifications(USER_ID, True)
        await engine.record_activity(USER_ID, Track.MESSAGE, 1200)
        await engine.drain_notifications()
        messenger.send_direct_message.reset_mock()
        assert marker_gateway.held[USER_ID] == {"M5"}

        result = await engine.reset_counters(USER_ID, 150, 0)
        await engine.drain_notifications()

        assert result.snapshot.tiers() == (2, 1, 2)
        assert result.reconciliation.succeeded
        assert marker_gateway.held[USER_ID] == {"M1"}
        messenger.send_direct_message.assert_not_awaited()

    async def test_reset_unknown_user(self, engine):
        with pytest.raises(NotFoundError):
            await engine.reset_counters(USER_ID, 0, 0)

    async def test_recalculate_all(self, engine, make_engine):
        await engine.record_activity(1, Track.MESSAGE, 150)
        await engine.record_activity(2, Track.VOICE, 50)

        rescaled = make_engine(thresholds=[50, 500])
        changed = await rescaled.recalculate_all()

        assert changed == 1
        assert (await rescaled.store.get(2)).tiers() == (1, 2, 2)

    async def test_sync_markers_all_users(self, engine, marker_gateway):
        await engine.record_activity(1, Track.MESSAGE, 10)
        await engine.record_activity(2, Track.MESSAGE, 350)
        marker_gateway.held.clear()
        marker_gateway.grant(1, "M5")

        summary = await engine.sync_markers()

        assert summary.checked == 2
        assert summary.failed == 0
        assert marker_gateway.held[1] == {"M1"}
        assert marker_gateway.held[2] == {"M3"}

    async def test_sync_markers_skips_unknown(self, engine, marker_gateway):
        await engine.record_activity(1, Track.MESSAGE, 10)

        summary = await engine.sync_markers([1, 999])

        assert summary.checked == 1
        assert 999 not in marker_gateway.held

    async def test_sync_markers_strict(self, make_engine, marker_gateway):
        engine = make_engine(persistent_markers=[1])
        await engine.record_activity(1, Track.MESSAGE, 1200)
        marker_gateway.grant(1, "M1", "M3")

        await engine.sync_markers([1])
        assert marker_gateway.held[1] == {"M1", "M3", "M5"}

        await engine.sync_markers([1], strict=True)
        assert marker_gateway.held[1] == {"M1", "M5"}

    async def test_sync_markers_with_other_gateway(self, engine, marker_gateway):
        await engine.record_activity(1, Track.MESSAGE, 350)
        other = type(marker_gateway)()

        summary = await engine.sync_markers(gateway=other)

        assert summary.added == 1
        assert other.held[1] == {"M3"}
        assert engine.reconciler.gateway is marker_gateway

    async def test_sync_markers_counts_failures(self, engine, marker_gateway):
        await engine.record_activity(1, Track.MESSAGE, 10)
        marker_gateway.held.clear()
        marker_gateway.fail("add", "M1")

        summary = await engine.sync_markers([1])

        assert summary.failed == 1
        assert len(summary.errors) == 1


@pytest.mark.unit
@pytest.mark.database
@pytest.mark.asyncio
class TestBuild:
    """Test engine wiring."""

    async def test_build_shares_settings(self, settings, marker_gateway, database):
        engine = ProgressionEngine.build(settings, marker_gateway)

        assert engine.notifier is None
        assert engine.reconciler.settings is settings
        assert engine.store.thresholds == settings.thresholds
