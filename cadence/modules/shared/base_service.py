"""
Base Service Foundation

Purpose
-------
Foundation class for Cadence domain services. Services implement business
logic on top of the stores and external gateways, validate their inputs,
and raise domain exceptions.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Read access to progression settings
- Input validation helpers that raise ``ValidationError``

What this class does NOT do:
- Manage database transactions (that's DatabaseService's job)
- Handle SQLAlchemy sessions (stores own those)
- Talk to Discord directly (gateways do)

Usage
-----
    class LeaderboardService(BaseService):
        def __init__(self, store, settings, logger):
            super().__init__(settings, logger)
            self.store = store
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    from logging import Logger

    from cadence.core.config.progression import ProgressionSettings


class BaseService:
    """
    Base class for all domain services.

    Args:
        settings: Progression settings (thresholds, markers, templates)
        logger: Structured logger instance
    """

    def __init__(self, settings: ProgressionSettings, logger: Logger) -> None:
        self._settings = settings
        self.log = logger

    @property
    def settings(self) -> ProgressionSettings:
        return self._settings

    def log_operation(self, operation: str, **context: Any) -> None:
        """Log a service operation with structured context."""
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation_name": operation, **context},
        )

    def log_error(
        self,
        operation: str,
        error: Exception,
        **context: Any,
    ) -> None:
        """Log a service error with full context."""
        self.log.error(
            f"Service error during {operation}: {str(error)}",
            extra={
                "operation_name": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
                **context,
            },
        )

    def validate_user_id(self, value: Any, name: str = "user_id") -> int:
        from cadence.core.validation.input_validator import InputValidator

        return InputValidator.validate_discord_id(value, field_name=name)

    def validate_non_negative_int(self, value: Any, name: str) -> int:
        from cadence.core.validation.input_validator import InputValidator

        return InputValidator.validate_non_negative_integer(value, field_name=name)

    def validate_positive_int(self, value: Any, name: str) -> int:
        from cadence.core.validation.input_validator import InputValidator

        return InputValidator.validate_positive_integer(value, field_name=name)

    def validate_choice(self, value: Any, name: str, choices: Sequence[str]) -> str:
        from cadence.core.validation.input_validator import InputValidator

        return InputValidator.validate_choice(value, field_name=name, valid_choices=choices)
