"""
Value objects returned by the progression store, engine and reconciler.

All are frozen dataclasses detached from any database session, so they can
be passed across tasks and compared in tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Sequence, Tuple

from cadence.modules.progression.tracks import Track
from cadence.modules.shared.exceptions import ReconciliationError
from cadence.modules.shared.formulas import derive_tiers


class TransitionScope:
    COMBINED = "combined"
    TRACK = "track"


@dataclass(frozen=True)
class ProgressionSnapshot:
    """Counters, tiers and preference of one user at one point in time."""

    user_id: int
    message_xp: int = 0
    voice_xp: int = 0
    message_tier: int = 1
    voice_tier: int = 1
    combined_tier: int = 1
    notifications_enabled: bool = False

    @property
    def total_xp(self) -> int:
        return self.message_xp + self.voice_xp

    def xp_for(self, track: Track) -> int:
        return getattr(self, track.counter_field)

    def tier_for(self, track: Track) -> int:
        return getattr(self, track.tier_field)

    @classmethod
    def initial(cls, user_id: int, thresholds: Sequence[int]) -> "ProgressionSnapshot":
        """State of a user with no recorded activity."""
        message_tier, voice_tier, combined_tier = derive_tiers(0, 0, thresholds)
        return cls(
            user_id=user_id,
            message_tier=message_tier,
            voice_tier=voice_tier,
            combined_tier=combined_tier,
        )

    @classmethod
    def from_record(cls, record: Any) -> "ProgressionSnapshot":
        return cls(
            user_id=int(record.user_id),
            message_xp=int(record.message_xp),
            voice_xp=int(record.voice_xp),
            message_tier=int(record.message_tier),
            voice_tier=int(record.voice_tier),
            combined_tier=int(record.combined_tier),
            notifications_enabled=bool(record.notifications_enabled),
        )

    def with_counters(
        self,
        message_xp: int,
        voice_xp: int,
        thresholds: Sequence[int],
    ) -> "ProgressionSnapshot":
        """Copy with new counters and all three tiers re-derived."""
        message_tier, voice_tier, combined_tier = derive_tiers(
            message_xp, voice_xp, thresholds
        )
        return replace(
            self,
            message_xp=message_xp,
            voice_xp=voice_xp,
            message_tier=message_tier,
            voice_tier=voice_tier,
            combined_tier=combined_tier,
        )

    def tiers(self) -> Tuple[int, int, int]:
        return (self.message_tier, self.voice_tier, self.combined_tier)


@dataclass(frozen=True)
class DeltaOutcome:
    """Before/after pair produced by one atomic store write."""

    before: ProgressionSnapshot
    after: ProgressionSnapshot
    created: bool = False

    @property
    def tiers_changed(self) -> bool:
        return self.before.tiers() != self.after.tiers()


@dataclass(frozen=True)
class ReconciliationPlan:
    """Marker diff for one user; computed without touching the gateway."""

    combined_tier: int
    target_marker: Optional[str]
    to_add: Tuple[str, ...] = ()
    to_remove: Tuple[str, ...] = ()

    @property
    def is_noop(self) -> bool:
        return not self.to_add and not self.to_remove


@dataclass(frozen=True)
class ReconciliationResult:
    """What a reconciliation pass planned, what it applied and what failed."""

    user_id: int
    plan: ReconciliationPlan
    added: Tuple[str, ...] = ()
    removed: Tuple[str, ...] = ()
    errors: Tuple[ReconciliationError, ...] = ()

    @property
    def succeeded(self) -> bool:
        return not self.errors

    @property
    def to_add(self) -> Tuple[str, ...]:
        return self.plan.to_add

    @property
    def to_remove(self) -> Tuple[str, ...]:
        return self.plan.to_remove


@dataclass(frozen=True)
class TransitionResult:
    """
    Outcome of one ``record_activity`` call.

    ``old_tier``/``new_tier`` are combined tiers when ``scope`` is
    ``"combined"`` and tiers of ``track`` when it is ``"track"``. Without a
    transition both hold the unchanged combined tier.
    """

    user_id: int
    track: Track
    transitioned: bool
    old_tier: int
    new_tier: int
    snapshot: ProgressionSnapshot
    scope: Optional[str] = None
    reconciliation: Optional[ReconciliationResult] = None

    @property
    def reconciliation_succeeded(self) -> Optional[bool]:
        """None when no reconciliation pass ran."""
        if self.reconciliation is None:
            return None
        return self.reconciliation.succeeded

    @property
    def reconciliation_errors(self) -> Tuple[ReconciliationError, ...]:
        if self.reconciliation is None:
            return ()
        return self.reconciliation.errors


@dataclass(frozen=True)
class ProgressionInfo:
    user_id: int
    message_xp: int
    voice_xp: int
    total_xp: int
    message_tier: int
    voice_tier: int
    combined_tier: int
    next_tier_xp: Optional[int]
    current_tier_floor_xp: int
    notifications_enabled: bool

    @property
    def xp_to_next_tier(self) -> Optional[int]:
        if self.next_tier_xp is None:
            return None
        return max(0, self.next_tier_xp - self.total_xp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "message_xp": self.message_xp,
            "voice_xp": self.voice_xp,
            "total_xp": self.total_xp,
            "message_tier": self.message_tier,
            "voice_tier": self.voice_tier,
            "combined_tier": self.combined_tier,
            "next_tier_xp": self.next_tier_xp,
            "current_tier_floor_xp": self.current_tier_floor_xp,
            "notifications_enabled": self.notifications_enabled,
        }


@dataclass
class MarkerSyncSummary:
    """Running totals for a bulk marker sync."""

    checked: int = 0
    added: int = 0
    removed: int = 0
    failed: int = 0
    errors: list = field(default_factory=list)

    def record(self, result: ReconciliationResult) -> None:
        self.checked += 1
        self.added += len(result.added)
        self.removed += len(result.removed)
        if not result.succeeded:
            self.failed += 1
            self.errors.extend(result.errors)


@dataclass(frozen=True)
class ResetResult:
    """Outcome of an administrative counter reset."""

    outcome: DeltaOutcome
    reconciliation: ReconciliationResult

    @property
    def snapshot(self) -> ProgressionSnapshot:
        return self.outcome.after
