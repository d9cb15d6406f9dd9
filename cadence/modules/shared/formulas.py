"""
Tier Formulas

Purpose
-------
Pure calculation functions that turn XP counters into tiers using a
threshold table. Every tier stored on a progression record and every
figure shown to users is derived here.

Design Notes
------------
- Pure functions only: no database or config access, all parameters passed in.
- Total: every integer XP maps to a tier >= 1, an empty table included.
- A threshold table is a non-decreasing sequence where index ``i`` holds
  the XP required for tier ``i + 2``. Tier 1 has no requirement.

Usage
-----
    from cadence.modules.shared.formulas import tier_of

    tier_of(150, [100, 300, 600])   # -> 2
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple


def tier_of(xp: int, thresholds: Sequence[int]) -> int:
    """
    Return the tier reached with ``xp`` under ``thresholds``.

    Scans from the highest cutoff downward and returns on the first one
    ``xp`` meets, so equal cutoffs resolve toward the higher tier.

    Example:
        >>> tier_of(0, [100, 300, 600])
        1
        >>> tier_of(300, [100, 300, 600])
        3
        >>> tier_of(10_000, [])
        1
    """
    for index in range(len(thresholds) - 1, -1, -1):
        if xp >= thresholds[index]:
            return index + 2
    return 1


def tier_floor_xp(tier: int, thresholds: Sequence[int]) -> int:
    """
    XP cutoff of ``tier`` itself.

    Tier 1 (and anything below) has a floor of 0. Tiers above the table
    are clamped to the last cutoff.
    """
    if tier <= 1 or not thresholds:
        return 0
    index = min(tier - 2, len(thresholds) - 1)
    return thresholds[index]


def xp_for_next_tier(tier: int, thresholds: Sequence[int]) -> Optional[int]:
    """
    XP cutoff of the tier directly above ``tier``.

    Returns None when ``tier`` is already the top tier of the table
    (including the single tier of an empty table).

    Example:
        >>> xp_for_next_tier(1, [100, 300])
        100
        >>> xp_for_next_tier(3, [100, 300]) is None
        True
    """
    index = max(tier, 1) - 1
    if index >= len(thresholds):
        return None
    return thresholds[index]


def derive_tiers(
    message_xp: int,
    voice_xp: int,
    thresholds: Sequence[int],
) -> Tuple[int, int, int]:
    """
    Derive ``(message_tier, voice_tier, combined_tier)`` from both counters.

    All three are always computed together; the combined tier comes from
    the summed counters, never from the per-track tiers.
    """
    return (
        tier_of(message_xp, thresholds),
        tier_of(voice_xp, thresholds),
        tier_of(message_xp + voice_xp, thresholds),
    )
