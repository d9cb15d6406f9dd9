"""
discord.py adapters for the progression gateways.

- DiscordMarkerGateway: markers as guild roles
- DiscordMessenger: tier-up notices as direct-message embeds
- MarkerSyncScheduler: periodic role sync for the configured guild
- CadenceBot: client that hosts the engine
"""

from .client import CadenceBot
from .markers import DiscordMarkerGateway, MarkerUnavailableError
from .messenger import DiscordMessenger
from .sync import MarkerSyncScheduler

__all__ = [
    "CadenceBot",
    "DiscordMarkerGateway",
    "DiscordMessenger",
    "MarkerSyncScheduler",
    "MarkerUnavailableError",
]
