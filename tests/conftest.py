"""
Pytest Configuration and Fixtures for Cadence Tests
===================================================

Purpose
-------
Centralized fixtures for the Cadence test suite: a throwaway database per
test, progression settings, gateway fakes and a ready-wired engine.

Architecture Notes
------------------
- Unit tests run against SQLite files (aiosqlite) under ``tmp_path``; each
  test gets a fresh schema and the DatabaseService is shut down afterwards.
- Integration tests (``tests/integration``) use a PostgreSQL testcontainer
  and only run when ``CADENCE_RUN_INTEGRATION=1``.
- External systems (roles, direct messages) are replaced by an in-memory
  marker gateway and a ``mocker.AsyncMock`` messenger.
"""

from __future__ import annotations

import os

# Must be set before cadence is imported: Config and logging read them at import
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("LOG_JSON", "false")

from collections import defaultdict  # noqa: E402
from typing import AsyncGenerator, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from cadence.core.config.progression import ProgressionSettings  # noqa: E402
from cadence.core.database.service import DatabaseService  # noqa: E402
from cadence.modules.progression.engine import ProgressionEngine  # noqa: E402

# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless explicitly enabled."""
    if os.getenv("CADENCE_RUN_INTEGRATION") == "1":
        return

    skip_integration = pytest.mark.skip(
        reason="set CADENCE_RUN_INTEGRATION=1 to run integration tests"
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ============================================================================
# GATEWAY FAKES
# ============================================================================


class FakeMarkerGateway:
    """
    In-memory marker gateway.

    ``held`` maps user id to marker ids. ``fail(action, marker_id)`` makes
    the next and every later call of that action on that marker raise.
    """

    def __init__(self) -> None:
        self.held: Dict[int, Set[str]] = defaultdict(set)
        self.failures: Dict[str, Set[str]] = defaultdict(set)
        self.calls: List[Tuple[str, int, str]] = []

    def grant(self, user_id: int, *marker_ids: str) -> None:
        self.held[user_id].update(marker_ids)

    def fail(self, action: str, marker_id: str) -> None:
        self.failures[action].add(marker_id)

    def _check_failure(self, action: str, marker_id: str) -> None:
        if marker_id in self.failures[action]:
            raise RuntimeError(f"{action} {marker_id} unavailable")

    async def has_marker(self, user_id: int, marker_id: str) -> bool:
        self.calls.append(("check", user_id, marker_id))
        self._check_failure("check", marker_id)
        return marker_id in self.held[user_id]

    async def add_marker(self, user_id: int, marker_id: str, reason: str) -> None:
        self.calls.append(("add", user_id, marker_id))
        self._check_failure("add", marker_id)
        self.held[user_id].add(marker_id)

    async def remove_marker(self, user_id: int, marker_id: str, reason: str) -> None:
        self.calls.append(("remove", user_id, marker_id))
        self._check_failure("remove", marker_id)
        self.held[user_id].discard(marker_id)

    def mutations(self) -> List[Tuple[str, int, str]]:
        return [call for call in self.calls if call[0] != "check"]


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[str, None]:
    """
    Initialize DatabaseService against a fresh SQLite file.

    Scope: function (clean schema per test)
    Yields: the database URL
    """
    url = f"sqlite+aiosqlite:///{tmp_path / 'cadence.db'}"
    await DatabaseService.initialize(url)
    await DatabaseService.create_all()

    yield url

    await DatabaseService.shutdown()


# ============================================================================
# SETTINGS / ENGINE FIXTURES
# ============================================================================

DEFAULT_THRESHOLDS = (100, 300, 600, 1000)
DEFAULT_MARKERS = {1: "M1", 3: "M3", 5: "M5"}


@pytest.fixture
def settings() -> ProgressionSettings:
    return ProgressionSettings(
        thresholds=DEFAULT_THRESHOLDS,
        markers=DEFAULT_MARKERS,
        notification_template="Tier {tier} reached in {track}",
    )


@pytest.fixture
def marker_gateway() -> FakeMarkerGateway:
    return FakeMarkerGateway()


@pytest.fixture
def messenger(mocker):
    """
    Mock messenger that accepts every direct message.

    Scope: function
    """
    mock_messenger = mocker.MagicMock()
    mock_messenger.send_direct_message = mocker.AsyncMock(return_value=True)
    return mock_messenger


@pytest.fixture
def make_engine(
    database, marker_gateway, messenger
) -> Callable[..., ProgressionEngine]:
    """
    Factory for engines sharing the test database, gateway and messenger.

    Usage:
        engine = make_engine(thresholds=[100, 300], markers={1: "M1"})
    """

    def _make(
        thresholds: Sequence[int] = DEFAULT_THRESHOLDS,
        markers: Optional[Mapping[int, str]] = None,
        persistent_markers: Sequence[int] = (),
        with_messenger: bool = True,
    ) -> ProgressionEngine:
        engine_settings = ProgressionSettings(
            thresholds=tuple(thresholds),
            markers=DEFAULT_MARKERS if markers is None else markers,
            persistent_markers=frozenset(persistent_markers),
            notification_template="Tier {tier} reached in {track}",
        )
        return ProgressionEngine.build(
            engine_settings,
            marker_gateway,
            messenger if with_messenger else None,
        )

    return _make


@pytest.fixture
def engine(make_engine) -> ProgressionEngine:
    return make_engine()
