"""
Integration fixtures: a PostgreSQL testcontainer behind DatabaseService.

Only used when CADENCE_RUN_INTEGRATION=1 (see tests/conftest.py).
"""

from typing import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from testcontainers.postgres import PostgresContainer

from cadence.core.database.service import DatabaseService
from cadence.core.logging.logger import get_logger

logger = get_logger(__name__)


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL testcontainer for integration tests.

    Scope: session (container persists across all tests)
    """
    logger.info("Starting PostgreSQL testcontainer...")
    container = PostgresContainer(
        image="postgres:17-alpine",
        driver="asyncpg",
    )
    container.start()

    yield container

    logger.info("Stopping PostgreSQL testcontainer...")
    container.stop()


@pytest_asyncio.fixture
async def pg_database(postgres_container: PostgresContainer) -> AsyncGenerator[str, None]:
    """
    Initialize DatabaseService against the container with a fresh schema.

    Scope: function (tables dropped after each test)
    """
    connection_url = postgres_container.get_connection_url().replace(
        "psycopg2", "asyncpg"
    )

    await DatabaseService.initialize(connection_url)
    await DatabaseService.create_all()

    yield connection_url

    await DatabaseService.drop_all()
    await DatabaseService.shutdown()
