"""
Cadence Test Suite
==================

Test Organization
-----------------
- tests/unit/          : Fast tests against SQLite files and in-memory gateways
- tests/integration/   : PostgreSQL testcontainer tests (CADENCE_RUN_INTEGRATION=1)

Testing Philosophy
------------------
- Unit tests cover business logic and the store's SQL paths
- Integration tests cover row locking and upserts on a real server
- Use pytest markers (unit, integration, database) to select tests
- Follow AAA pattern: Arrange, Act, Assert
"""
