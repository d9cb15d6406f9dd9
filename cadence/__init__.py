"""
Cadence - dual-track progression and role reconciliation for Discord.

Converts chat and voice activity into persistent experience counters,
derives tiers from a configurable threshold table, and keeps each member's
tier roles ("markers") in step with their combined tier.
"""

__version__ = "1.0.0"
