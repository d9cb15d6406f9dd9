"""
Domain exceptions for Cadence.

Which errors reach a caller is part of each operation's contract:

- ``ValidationError``, ``NotFoundError``: raised to the caller.
- ``StoreError``: raised to the caller after the transaction was rolled
  back; retrying the whole operation is safe.
- ``ReconciliationError``: collected in a reconciliation result and
  logged, never raised past the engine.
- ``NotificationError``: logged by the notifier, never raised.

Every exception carries ``message``, ``details`` (a dict for structured
logs), ``severity``, ``is_retryable`` and a stable ``error_code``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


_ALERTING = frozenset({ErrorSeverity.ERROR, ErrorSeverity.CRITICAL})


class CadenceDomainException(Exception):
    """
    Base class for domain errors.

    Subclasses set ``DEFAULT_SEVERITY`` and ``DEFAULT_RETRYABLE``; both can
    be overridden per instance.
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})
        self.severity = severity if severity is not None else self.DEFAULT_SEVERITY
        self.is_retryable = (
            self.DEFAULT_RETRYABLE if is_retryable is None else bool(is_retryable)
        )
        self.error_code = error_code or type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.error_code}] {self.message}"
        return f"[{self.error_code}] {self.message} | {self.details}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, code={self.error_code!r})"


class ValidationError(CadenceDomainException):
    """Caller input rejected before any state was touched."""

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Invalid {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class NotFoundError(CadenceDomainException):
    """No record exists for the requested identifier."""

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        suffix = "" if identifier is None else f": {identifier}"
        super().__init__(
            f"{resource_type} not found{suffix}",
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class StoreError(CadenceDomainException):
    """
    The progression store could not complete ``operation``.

    Nothing from the failed transaction is visible afterwards.
    """

    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, reason: str, user_id: Optional[int] = None) -> None:
        self.operation = operation
        self.reason = reason
        self.user_id = user_id
        super().__init__(
            f"{operation} failed: {reason}",
            details={"operation": operation, "reason": reason, "user_id": user_id},
            error_code="STORE_ERROR",
        )


class ReconciliationError(CadenceDomainException):
    """
    One marker step that failed.

    ``action`` is ``"check"``, ``"add"`` or ``"remove"``.
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        user_id: int,
        action: str,
        marker_id: Optional[str],
        reason: str,
    ) -> None:
        self.user_id = user_id
        self.action = action
        self.marker_id = marker_id
        self.reason = reason
        subject = "marker" if marker_id is None else f"marker {marker_id}"
        super().__init__(
            f"{action} {subject} for user {user_id} failed: {reason}",
            details={
                "user_id": user_id,
                "action": action,
                "marker_id": marker_id,
                "reason": reason,
            },
            error_code=f"RECONCILIATION_{action.upper()}_FAILED",
        )


class NotificationError(CadenceDomainException):
    """A tier-up notice that was not delivered."""

    DEFAULT_SEVERITY = ErrorSeverity.WARNING

    def __init__(self, user_id: int, reason: str) -> None:
        self.user_id = user_id
        self.reason = reason
        super().__init__(
            f"notice to user {user_id} not delivered: {reason}",
            details={"user_id": user_id, "reason": reason},
            error_code="NOTIFICATION_FAILED",
        )


def is_transient_error(exc: BaseException) -> bool:
    return isinstance(exc, CadenceDomainException) and exc.is_retryable


def get_error_severity(exc: BaseException) -> ErrorSeverity:
    if isinstance(exc, CadenceDomainException):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: BaseException) -> bool:
    """Unexpected exceptions always alert; domain errors only at ERROR or above."""
    return get_error_severity(exc) in _ALERTING


__all__ = [
    "ErrorSeverity",
    "CadenceDomainException",
    "ValidationError",
    "NotFoundError",
    "StoreError",
    "ReconciliationError",
    "NotificationError",
    "is_transient_error",
    "get_error_severity",
    "should_alert",
]
