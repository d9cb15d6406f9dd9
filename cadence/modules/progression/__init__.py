"""
Progression Module

Domain: dual-track XP, derived tiers, marker reconciliation, tier-up notices

Services:
- ProgressionEngine: activity entry point and administrative operations
- ProgressionStore: atomic persistence of counters and tiers
- MarkerReconciler: keeps external markers in line with the combined tier
- Notifier: best-effort tier-up direct messages
"""

from .engine import ProgressionEngine, detect_transition
from .gateways import MarkerGateway, Messenger
from .models import (
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
from .notifier import Notifier
from .reconciler import MarkerReconciler, plan_reconciliation
from .store import ProgressionStore
from .tracks import OrderKey, Track

__all__ = [
    "ProgressionEngine",
    "detect_transition",
    "ProgressionStore",
    "MarkerReconciler",
    "plan_reconciliation",
    "Notifier",
    "MarkerGateway",
    "Messenger",
    "Track",
    "OrderKey",
    "DeltaOutcome",
    "MarkerSyncSummary",
    "ProgressionInfo",
    "ProgressionSnapshot",
    "ReconciliationPlan",
    "ReconciliationResult",
    "ResetResult",
    "TransitionResult",
    "TransitionScope",
]
