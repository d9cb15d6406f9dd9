"""
Progression Engine

Purpose
-------
Turns activity events into persisted XP, detects tier transitions, and
drives the two side effects of a transition: marker reconciliation and
the tier-up notice.

Responsibilities
----------------
- ``record_activity``: apply one event to one track, report the transition
- ``get_progression_info``: counters, tiers and next-tier figures for a user
- Notification preference (set / toggle)
- Administrative operations: counter reset, bulk tier recalculation,
  bulk marker sync

Transition Rule
---------------
A transition is reported once per event. A combined-tier increase wins and
is reported with the combined tiers. Otherwise an increase of the active
track's own tier is reported with that track's tiers. Old tiers are the
tiers stored before the write, as returned by the store.

Side Effects
------------
The counter transaction has committed before any side effect starts, so
neither holds a lock on the record. Reconciliation is awaited and its
outcome is attached to the result; its failures never turn into an error
from ``record_activity``. Notifications run as background tasks, so a slow
or failing DM never delays the caller. ``drain_notifications`` waits for
the outstanding ones.

Error Handling
--------------
- ``ValidationError`` for bad input, raised before anything is written
- ``StoreError`` from the store, propagated unchanged
- ``NotFoundError`` for administrative operations on unknown users
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from logging import Logger
from typing import Any, Iterable, Optional, Set

from cadence.core.config.progression import ProgressionSettings
from cadence.core.logging.logger import LogContext, get_logger
from cadence.modules.progression.gateways import MarkerGateway, Messenger
from cadence.modules.progression.models import (
    DeltaOutcome,
    MarkerSyncSummary,
    ProgressionInfo,
    ProgressionSnapshot,
    ReconciliationPlan,
    ReconciliationResult,
    ResetResult,
    TransitionResult,
    TransitionScope,
)
from cadence.modules.progression.notifier import Notifier
from cadence.modules.progression.reconciler import MarkerReconciler
from cadence.modules.progression.store import ProgressionStore
from cadence.modules.progression.tracks import Track
from cadence.modules.shared.base_service import BaseService
from cadence.modules.shared.exceptions import ReconciliationError
from cadence.modules.shared.formulas import tier_floor_xp, xp_for_next_tier


def detect_transition(outcome: DeltaOutcome, track: Track) -> TransitionResult:
    """
    Classify a delta outcome as a reportable transition or not.

    Pure: looks only at the stored-before and derived-after snapshots.
    """
    before, after = outcome.before, outcome.after

    if after.combined_tier > before.combined_tier:
        return TransitionResult(
            user_id=after.user_id,
            track=track,
            transitioned=True,
            scope=TransitionScope.COMBINED,
            old_tier=before.combined_tier,
            new_tier=after.combined_tier,
            snapshot=after,
        )

    if after.tier_for(track) > before.tier_for(track):
        return TransitionResult(
            user_id=after.user_id,
            track=track,
            transitioned=True,
            scope=TransitionScope.TRACK,
            old_tier=before.tier_for(track),
            new_tier=after.tier_for(track),
            snapshot=after,
        )

    return TransitionResult(
        user_id=after.user_id,
        track=track,
        transitioned=False,
        old_tier=before.combined_tier,
        new_tier=after.combined_tier,
        snapshot=after,
    )


class ProgressionEngine(BaseService):
    """
    Entry point for activity sources and command layers.

    Args:
        settings: Threshold table, marker map and notification template
        store: Progression record store built with the same thresholds
        reconciler: Marker reconciler
        notifier: Optional tier-up notifier; without one no notices are sent
        logger: Optional logger
    """

    def __init__(
        self,
        settings: ProgressionSettings,
        store: ProgressionStore,
        reconciler: MarkerReconciler,
        notifier: Optional[Notifier] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(settings, logger or get_logger(__name__))
        self.store = store
        self.reconciler = reconciler
        self.notifier = notifier
        self._pending_notifications: Set["asyncio.Task[bool]"] = set()

    @classmethod
    def build(
        cls,
        settings: ProgressionSettings,
        marker_gateway: MarkerGateway,
        messenger: Optional[Messenger] = None,
    ) -> "ProgressionEngine":
        """Wire a store, reconciler and notifier from one settings object."""
        return cls(
            settings=settings,
            store=ProgressionStore(settings.thresholds),
            reconciler=MarkerReconciler(marker_gateway, settings),
            notifier=Notifier(messenger, settings) if messenger is not None else None,
        )

    # ========================================================================
    # Activity
    # ========================================================================

    async def record_activity(
        self,
        user_id: Any,
        track: Any,
        xp_gain: Any,
    ) -> TransitionResult:
        """
        Add ``xp_gain`` to ``track`` for ``user_id`` and report any transition.

        A zero gain writes nothing and never reconciles or notifies; it
        returns the current state (the initial state for unknown users).

        Raises:
            ValidationError: Bad user id, unknown track or negative gain
            StoreError: The counter update failed and was rolled back
        """
        user_id = self.validate_user_id(user_id)
        track = Track.parse(track)
        xp_gain = self.validate_non_negative_int(xp_gain, "xp_gain")

        async with LogContext(user_id=user_id, operation="record_activity"):
            if xp_gain == 0:
                snapshot = await self.store.get(user_id)
                if snapshot is None:
                    snapshot = ProgressionSnapshot.initial(user_id, self.settings.thresholds)
                return TransitionResult(
                    user_id=user_id,
                    track=track,
                    transitioned=False,
                    old_tier=snapshot.combined_tier,
                    new_tier=snapshot.combined_tier,
                    snapshot=snapshot,
                )

            outcome = await self.store.apply_delta(
                user_id,
                message_delta=xp_gain if track is Track.MESSAGE else 0,
                voice_delta=xp_gain if track is Track.VOICE else 0,
            )

            result = detect_transition(outcome, track)
            if not result.transitioned:
                return result

            self.log.info(
                "Tier transition",
                extra={
                    "track": track.value,
                    "scope": result.scope,
                    "old_tier": result.old_tier,
                    "new_tier": result.new_tier,
                    "combined_tier": outcome.after.combined_tier,
                },
            )

            reconciliation = await self._reconcile(user_id, outcome.after.combined_tier)

            if outcome.after.notifications_enabled and self.notifier is not None:
                self._schedule_notification(
                    self.notifier, user_id, result.new_tier, track, result.scope
                )

            return replace(result, reconciliation=reconciliation)

    async def _reconcile(
        self,
        user_id: int,
        combined_tier: int,
        strict: bool = False,
        reconciler: Optional[MarkerReconciler] = None,
    ) -> ReconciliationResult:
        reconciler = reconciler or self.reconciler
        try:
            return await reconciler.reconcile(user_id, combined_tier, strict=strict)
        except Exception as exc:
            # Per-step failures are collected by the reconciler; this is a failed pass
            error = ReconciliationError(user_id, "reconcile", None, f"{type(exc).__name__}: {exc}")
            self.log_error("reconcile", exc, target_user_id=user_id)
            return ReconciliationResult(
                user_id=user_id,
                plan=ReconciliationPlan(combined_tier=combined_tier, target_marker=None),
                errors=(error,),
            )

    def _schedule_notification(
        self,
        notifier: Notifier,
        user_id: int,
        new_tier: int,
        track: Track,
        scope: Optional[str],
    ) -> None:
        task = asyncio.create_task(
            notifier.notify(user_id, new_tier, track, scope or TransitionScope.COMBINED),
            name=f"cadence-notify-{user_id}",
        )
        self._pending_notifications.add(task)
        task.add_done_callback(self._pending_notifications.discard)

    @property
    def pending_notifications(self) -> int:
        return len(self._pending_notifications)

    async def drain_notifications(self) -> None:
        """Wait for every scheduled notification to finish."""
        while self._pending_notifications:
            await asyncio.gather(*list(self._pending_notifications), return_exceptions=True)

    # ========================================================================
    # Queries
    # ========================================================================

    async def get_progression_info(self, user_id: Any) -> Optional[ProgressionInfo]:
        """
        Counters, tiers and next-tier figures for ``user_id``; None if unknown.

        ``next_tier_xp`` is the cutoff above the combined tier, None at the
        top tier. ``current_tier_floor_xp`` is the cutoff of the combined
        tier itself, 0 for tier 1.
        """
        user_id = self.validate_user_id(user_id)
        snapshot = await self.store.get(user_id)
        if snapshot is None:
            return None

        thresholds = self.settings.thresholds
        return ProgressionInfo(
            user_id=user_id,
            message_xp=snapshot.message_xp,
            voice_xp=snapshot.voice_xp,
            total_xp=snapshot.total_xp,
            message_tier=snapshot.message_tier,
            voice_tier=snapshot.voice_tier,
            combined_tier=snapshot.combined_tier,
            next_tier_xp=xp_for_next_tier(snapshot.combined_tier, thresholds),
            current_tier_floor_xp=tier_floor_xp(snapshot.combined_tier, thresholds),
            notifications_enabled=snapshot.notifications_enabled,
        )

    # ========================================================================
    # Notification preference
    # ========================================================================

    async def set_notifications(self, user_id: Any, enabled: bool) -> ProgressionSnapshot:
        user_id = self.validate_user_id(user_id)
        async with LogContext(user_id=user_id, operation="set_notifications"):
            snapshot = await self.store.set_notifications(user_id, enabled)
            self.log_operation("set_notifications", enabled=snapshot.notifications_enabled)
            return snapshot

    async def toggle_notifications(self, user_id: Any) -> ProgressionSnapshot:
        """Flip the preference and return the updated snapshot."""
        user_id = self.validate_user_id(user_id)
        async with LogContext(user_id=user_id, operation="toggle_notifications"):
            snapshot = await self.store.toggle_notifications(user_id)
            self.log_operation("toggle_notifications", enabled=snapshot.notifications_enabled)
            return snapshot

    # ========================================================================
    # Administration
    # ========================================================================

    async def reset_counters(
        self,
        user_id: Any,
        message_xp: Any,
        voice_xp: Any,
    ) -> ResetResult:
        """
        Overwrite both counters, re-derive tiers and reconcile markers.

        Markers follow the new tier in either direction. No notice is sent.

        Raises:
            NotFoundError: The user has no record
        """
        user_id = self.validate_user_id(user_id)
        message_xp = self.validate_non_negative_int(message_xp, "message_xp")
        voice_xp = self.validate_non_negative_int(voice_xp, "voice_xp")

        async with LogContext(user_id=user_id, operation="reset_counters"):
            outcome = await self.store.overwrite_counters(user_id, message_xp, voice_xp)
            reconciliation = await self._reconcile(user_id, outcome.after.combined_tier)
            self.log_operation(
                "reset_counters",
                message_xp=message_xp,
                voice_xp=voice_xp,
                combined_tier=outcome.after.combined_tier,
                reconciled=reconciliation.succeeded,
            )
            return ResetResult(outcome=outcome, reconciliation=reconciliation)

    async def recalculate_all(self, batch_size: int = 500) -> int:
        """
        Re-derive every stored tier from its counters.

        Returns the number of records whose tiers changed.
        """
        batch_size = self.validate_positive_int(batch_size, "batch_size")
        async with LogContext(operation="recalculate_all"):
            changed = await self.store.recalculate_all_tiers(batch_size=batch_size)
            self.log_operation("recalculate_all", changed=changed)
            return changed

    async def sync_markers(
        self,
        user_ids: Optional[Iterable[Any]] = None,
        strict: bool = False,
        gateway: Optional[MarkerGateway] = None,
    ) -> MarkerSyncSummary:
        """
        Reconcile markers for the given users, or for every stored user.

        Users without a record are skipped. ``strict`` additionally strips
        non-persistent lower-tier markers. ``gateway`` replaces the
        engine's own marker gateway for this run only.
        """
        summary = MarkerSyncSummary()
        reconciler = (
            MarkerReconciler(gateway, self.settings) if gateway is not None else self.reconciler
        )

        async with LogContext(operation="sync_markers"):
            if user_ids is None:
                targets = [user_id async for user_id in self.store.iter_user_ids()]
            else:
                targets = [self.validate_user_id(user_id) for user_id in user_ids]

            for user_id in targets:
                snapshot = await self.store.get(user_id)
                if snapshot is None:
                    self.log.debug(
                        "Marker sync skipped unknown user",
                        extra={"target_user_id": user_id},
                    )
                    continue

                async with LogContext(user_id=user_id):
                    result = await self._reconcile(
                        user_id, snapshot.combined_tier, strict=strict, reconciler=reconciler
                    )
                summary.record(result)

            self.log_operation(
                "sync_markers",
                checked=summary.checked,
                added=summary.added,
                removed=summary.removed,
                failed=summary.failed,
                strict=strict,
            )

        return summary

