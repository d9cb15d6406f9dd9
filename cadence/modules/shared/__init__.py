"""
Cadence Shared Module

Purpose
-------
Domain-level foundations used by every feature module:
- Domain exceptions and error handling helpers
- Base service and repository patterns
- Pure tier formulas

Architecture
------------
- BaseService: Foundation for service classes (logging, settings, validation)
- BaseRepository: Type-safe database access patterns
- Domain exceptions: caller-facing and best-effort failure types
- Formulas: threshold table lookups

Usage
-----
    from cadence.modules.shared import BaseService, StoreError, tier_of
"""

from __future__ import annotations

from .base_repository import BaseRepository
from .base_service import BaseService
from .exceptions import (
    CadenceDomainException,
    ErrorSeverity,
    NotFoundError,
    NotificationError,
    ReconciliationError,
    StoreError,
    ValidationError,
    get_error_severity,
    is_transient_error,
    should_alert,
)
from .formulas import (
    derive_tiers,
    tier_floor_xp,
    tier_of,
    xp_for_next_tier,
)

__all__ = [
    # Base patterns
    "BaseService",
    "BaseRepository",
    # Exceptions
    "CadenceDomainException",
    "ErrorSeverity",
    "ValidationError",
    "NotFoundError",
    "StoreError",
    "ReconciliationError",
    "NotificationError",
    "is_transient_error",
    "get_error_severity",
    "should_alert",
    # Formulas
    "tier_of",
    "tier_floor_xp",
    "xp_for_next_tier",
    "derive_tiers",
]
