"""
Configuration error hierarchy for Cadence.

Purpose
-------
Domain-specific exceptions for configuration loading so callers can tell a
missing settings file apart from a malformed one.

Exception Hierarchy
-------------------
ConfigError (base)
├── ConfigValidationError (schema/type validation failures)
└── ConfigInitializationError (startup/init failures)
"""


class ConfigError(Exception):
    """
    Base exception for all configuration-related errors.

    Example
    -------
    >>> try:
    ...     settings = load_progression_settings(path)
    ... except ConfigError as e:
    ...     logger.error(f"Config load failed: {e}")
    """
    pass


class ConfigValidationError(ConfigError):
    """
    Raised when configuration validation fails.

    This exception is raised when:
    - Schema validation fails (wrong type, invalid structure)
    - Thresholds are negative or not in non-decreasing order
    - Marker tiers are not positive integers
    - Type coercion fails
    """
    pass


class ConfigInitializationError(ConfigError):
    """
    Raised when configuration cannot be loaded at all.

    This exception is raised when:
    - The progression YAML file does not exist
    - The YAML file cannot be parsed

    This is a critical error that typically requires intervention
    before the application can continue.
    """
    pass


__all__ = [
    "ConfigError",
    "ConfigValidationError",
    "ConfigInitializationError",
]
