"""
Infrastructure exceptions for the Monster Arena battle service.

Purpose
-------
Define the structured exception hierarchy for infrastructure-level concerns:
open Redis circuit breakers, lock acquisition timeouts, corrupted battle
records and outbound notification failures.

Design Notes
------------
- All infrastructure exceptions inherit from `ArenaInfrastructureException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried
  - `error_code`: short, stable identifier for programmatic use
- Gameplay rejections (wrong turn, finished battle) are domain exceptions and
  live in `src.modules.shared.exceptions`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"  # Expected, not concerning (e.g., stale socket message)
    INFO = "info"  # Normal operation (e.g., not your turn)
    WARNING = "warning"  # Concerning but handled (e.g., retryable errors)
    ERROR = "error"  # Unexpected errors requiring attention
    CRITICAL = "critical"  # System-level failures requiring immediate action


class ArenaInfrastructureException(Exception):
    """
    Base exception for all infrastructure-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise ArenaInfrastructureException(
        ...     "Redis connection failed",
        ...     {"url": "redis://localhost:6379/0"}
        ... )
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
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class BattleRecordCorruptedError(ArenaInfrastructureException):
    """
    Raised when a stored battle record cannot be decoded.

    A corrupted record is never repaired with defaults; the battle is
    treated as unusable and the failure surfaces to operators.

    Args:
        battle_id: Battle whose record failed to decode (if known)
        reason: What was wrong with the stored payload
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = False

    def __init__(self, reason: str, battle_id: Optional[int] = None) -> None:
        self.battle_id = battle_id
        self.reason = reason
        super().__init__(
            f"Battle record corrupted: {reason}",
            details={"battle_id": battle_id, "reason": reason},
            error_code="BATTLE_RECORD_CORRUPTED",
        )


class CircuitBreakerError(ArenaInfrastructureException):
    """
    Raised when a circuit breaker is open and blocking operations.

    Args:
        service: Name of the service with an open circuit breaker
        failure_count: Number of consecutive failures that opened the circuit
        retry_after: Seconds until circuit breaker can be retried
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, service: str, failure_count: int, retry_after: float) -> None:
        self.service = service
        self.failure_count = failure_count
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker open for {service} "
            f"({failure_count} failures, retry after {retry_after:.1f}s)",
            details={
                "service": service,
                "failure_count": failure_count,
                "retry_after": retry_after,
            },
            error_code="CIRCUIT_BREAKER_OPEN",
        )


class LockAcquireTimeoutError(ArenaInfrastructureException):
    """
    Raised when a distributed lock cannot be acquired within its wait timeout.

    Only lock acquisition raises this; timeouts inside the locked block
    propagate unchanged.

    Args:
        key: Redis key of the lock
        wait_timeout: Seconds spent waiting before giving up
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = True

    def __init__(self, key: str, wait_timeout: float) -> None:
        self.key = key
        self.wait_timeout = wait_timeout
        super().__init__(
            f"Failed to acquire Redis lock '{key}' within {wait_timeout}s",
            details={"lock_key": key, "wait_timeout": wait_timeout},
            error_code="LOCK_ACQUIRE_TIMEOUT",
        )


class NotificationError(ArenaInfrastructureException):
    """
    Raised when an outbound notification cannot be delivered.

    Args:
        channel: Notification channel (e.g. "bot")
        target: Identifier of what was being notified about
        reason: Description of the failure
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = False

    def __init__(self, channel: str, target: str, reason: str) -> None:
        self.channel = channel
        self.target = target
        super().__init__(
            f"Notification via {channel} failed for {target}: {reason}",
            details={"channel": channel, "target": target, "reason": reason},
            error_code="NOTIFICATION_FAILED",
        )
