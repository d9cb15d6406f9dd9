"""
Leaderboard Module

Domain: ranked listings over progression records

Services:
- LeaderboardService: top users by XP or tier
"""

from .service import LeaderboardEntry, LeaderboardService

__all__ = [
    "LeaderboardEntry",
    "LeaderboardService",
]
