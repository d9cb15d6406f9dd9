"""
Marker Reconciler

Purpose
-------
Keeps a member's externally held progression markers (guild roles) in line
with their combined tier. After a pass the member holds the marker of the
highest mapped tier not above their combined tier and no marker of any
tier above it.

Algorithm
---------
1. Target marker: the marker of the highest tier ``t <= combined_tier``
   present in the marker map (unmapped tiers are skipped).
2. Every held marker mapped to a tier ``> combined_tier`` is removed.
3. The target is added if not already held.
4. Lower-tier markers other than the target are left alone, unless the
   pass is ``strict``; strict passes also remove them, except markers of
   tiers listed as persistent.

Failure Semantics
-----------------
Each lookup, grant and removal is attempted independently. A failure is
logged, wrapped in ``ReconciliationError`` and collected in the result;
nothing is raised. The next pass converges from whatever state was left.
"""

from __future__ import annotations

from dataclasses import replace
from logging import Logger
from typing import AbstractSet, Dict, Iterable, List, Mapping, Optional, Set

from cadence.core.config.progression import ProgressionSettings
from cadence.core.logging.logger import get_logger
from cadence.modules.progression.gateways import MarkerGateway
from cadence.modules.progression.models import (
    ReconciliationPlan,
    ReconciliationResult,
)
from cadence.modules.shared.base_service import BaseService
from cadence.modules.shared.exceptions import ReconciliationError


def plan_reconciliation(
    combined_tier: int,
    markers: Mapping[int, str],
    current_markers: Iterable[str],
    strict: bool = False,
    persistent_tiers: AbstractSet[int] = frozenset(),
) -> ReconciliationPlan:
    """
    Compute the marker diff for one member without side effects.

    Example:
        >>> plan = plan_reconciliation(2, {1: "M1", 3: "M3", 5: "M5"}, {"M5"})
        >>> plan.to_add, plan.to_remove
        (('M1',), ('M5',))
    """
    held = set(current_markers)
    ordered = sorted(markers.items())

    target: Optional[str] = None
    for tier, marker_id in ordered:
        if tier <= combined_tier:
            target = marker_id

    protected: Set[str] = {
        marker_id for tier, marker_id in ordered if tier in persistent_tiers
    }

    to_remove: List[str] = []
    for tier, marker_id in ordered:
        if marker_id not in held or marker_id == target or marker_id in to_remove:
            continue
        if tier > combined_tier:
            to_remove.append(marker_id)
        elif strict and marker_id not in protected:
            to_remove.append(marker_id)

    to_add = (target,) if target is not None and target not in held else ()

    return ReconciliationPlan(
        combined_tier=combined_tier,
        target_marker=target,
        to_add=to_add,
        to_remove=tuple(to_remove),
    )


class MarkerReconciler(BaseService):
    """
    Applies reconciliation plans through a ``MarkerGateway``.

    The marker map is read from the settings on every pass, never cached.
    """

    def __init__(
        self,
        gateway: MarkerGateway,
        settings: ProgressionSettings,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(settings, logger or get_logger(__name__))
        self.gateway = gateway

    async def _current_markers(
        self,
        user_id: int,
        markers: Mapping[int, str],
        errors: List[ReconciliationError],
    ) -> Dict[str, Optional[bool]]:
        """Map each distinct marker id to held/not held, or None if unknown."""
        state: Dict[str, Optional[bool]] = {}
        for marker_id in dict.fromkeys(markers.values()):
            try:
                state[marker_id] = bool(await self.gateway.has_marker(user_id, marker_id))
            except Exception as exc:
                state[marker_id] = None
                errors.append(self._failure(user_id, "check", marker_id, exc))
        return state

    def _failure(
        self,
        user_id: int,
        action: str,
        marker_id: str,
        exc: Exception,
    ) -> ReconciliationError:
        error = ReconciliationError(user_id, action, marker_id, f"{type(exc).__name__}: {exc}")
        self.log.warning(
            "Marker reconciliation step failed",
            extra={
                "error_code": error.error_code,
                "error": error.message,
                "details": error.details,
                "target_user_id": user_id,
            },
        )
        return error

    async def reconcile(
        self,
        user_id: int,
        combined_tier: int,
        strict: bool = False,
    ) -> ReconciliationResult:
        """
        Bring the member's markers in line with ``combined_tier``.

        Never raises; failures are returned in ``ReconciliationResult.errors``.
        """
        markers = self.settings.markers
        errors: List[ReconciliationError] = []

        if not markers:
            return ReconciliationResult(
                user_id=user_id,
                plan=ReconciliationPlan(combined_tier=combined_tier, target_marker=None),
            )

        state = await self._current_markers(user_id, markers, errors)
        held = {marker_id for marker_id, is_held in state.items() if is_held}
        unknown = {marker_id for marker_id, is_held in state.items() if is_held is None}

        # Unknown markers count as held for removal; an unknown target is still granted
        plan = plan_reconciliation(
            combined_tier,
            markers,
            held | unknown,
            strict=strict,
            persistent_tiers=self.settings.persistent_markers,
        )
        if plan.target_marker in unknown:
            plan = replace(plan, to_add=(plan.target_marker,))

        removed: List[str] = []
        for marker_id in plan.to_remove:
            try:
                await self.gateway.remove_marker(
                    user_id, marker_id, f"Progression tier is now {combined_tier}"
                )
                removed.append(marker_id)
            except Exception as exc:
                errors.append(self._failure(user_id, "remove", marker_id, exc))

        added: List[str] = []
        for marker_id in plan.to_add:
            try:
                await self.gateway.add_marker(
                    user_id, marker_id, f"Reached progression tier {combined_tier}"
                )
                added.append(marker_id)
            except Exception as exc:
                errors.append(self._failure(user_id, "add", marker_id, exc))

        result = ReconciliationResult(
            user_id=user_id,
            plan=plan,
            added=tuple(added),
            removed=tuple(removed),
            errors=tuple(errors),
        )

        if not plan.is_noop or errors:
            self.log.info(
                "Markers reconciled",
                extra={
                    "target_user_id": user_id,
                    "combined_tier": combined_tier,
                    "target_marker": plan.target_marker,
                    "added": list(added),
                    "removed": list(removed),
                    "error_count": len(errors),
                    "strict": strict,
                },
            )

        return result
