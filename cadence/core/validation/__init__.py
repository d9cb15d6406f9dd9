"""Input validation for values entering the progression engine."""

from cadence.core.validation.input_validator import InputValidator

__all__ = ["InputValidator"]
