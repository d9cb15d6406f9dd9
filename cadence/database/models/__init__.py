"""
ORM models.

Exports:
- ProgressionRecord
"""

from .progression_record import ProgressionRecord

__all__ = ["ProgressionRecord"]
