"""
Core infrastructure layer for Cadence.

Purpose
-------
Hosts the infrastructure subsystems the progression modules build on:

- Configuration (static env config, progression settings from YAML)
- Logging (structured logging, LogContext)
- Database (async engine, sessions, transactions)
- Validation (InputValidator)

Feature modules import from the concrete submodules; this package only
documents the boundary and performs no I/O on import.
"""
