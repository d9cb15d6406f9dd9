"""
Interfaces to the systems this engine does not own.

The engine only ever talks to markers and direct messages through these
protocols. ``cadence.bot`` provides the discord.py implementations; tests
provide mocks.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class MarkerGateway(Protocol):
    """
    Grants and revokes external markers (guild roles).

    Every call may fail independently. ``add_marker``/``remove_marker``
    must be idempotent when the member already is in the desired state.
    """

    async def has_marker(self, user_id: int, marker_id: str) -> bool: ...

    async def add_marker(self, user_id: int, marker_id: str, reason: str) -> None: ...

    async def remove_marker(self, user_id: int, marker_id: str, reason: str) -> None: ...


@runtime_checkable
class Messenger(Protocol):
    """Delivers a direct message; returns False when delivery was refused."""

    async def send_direct_message(self, user_id: int, content: str) -> bool: ...
