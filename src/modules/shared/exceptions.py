"""
Domain exceptions for the arena battle engine.

Purpose
-------
Define the structured exception hierarchy for game logic: rule violations,
wrong-turn submissions, missing battles, and resource preconditions. The
gateway turns these into a rejection sentinel for the client instead of a
server error.

Design Notes
------------
- All domain exceptions inherit from `ArenaDomainException`.
- Each exception carries `message`, `details`, `severity`, `is_retryable`
  and `error_code`.
- `reason` is the short machine-readable code sent to the client on
  rejection (e.g. "not_your_turn").
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from src.core.exceptions import ErrorSeverity

__all__ = [
    "ErrorSeverity",
    "ArenaDomainException",
    "NotFoundError",
    "BattleNotFoundError",
    "InvalidOperationError",
    "NotYourTurnError",
    "BattleAlreadyFinishedError",
    "BattleConflictError",
    "BattleBusyError",
    "InsufficientResourcesError",
    "ValidationError",
]


class ArenaDomainException(Exception):
    """
    Base exception for all domain-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise ArenaDomainException("Battle rejected", {"battle_id": 42})
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False
    REASON: str = "error"

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

    @property
    def reason(self) -> str:
        return self.REASON

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


class NotFoundError(ArenaDomainException):
    """
    Raised when a requested entity cannot be found.

    Args:
        resource_type: Type of resource (e.g., "Monster", "User")
        identifier: Optional identifier for the missing resource
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    REASON = "not_found"

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"
        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class BattleNotFoundError(NotFoundError):
    """Raised when no live record exists for a battle (never created or expired)."""

    def __init__(self, battle_id: int) -> None:
        self.battle_id = battle_id
        super().__init__("Battle", battle_id)


class InvalidOperationError(ArenaDomainException):
    """
    Raised when an action violates game rules.

    Args:
        action: Description of the invalid action
        reason: Explanation of why it's not allowed
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    REASON = "invalid_operation"

    def __init__(self, action: str, reason: str) -> None:
        self.action = action
        self.reason_text = reason
        super().__init__(
            f"Invalid operation '{action}': {reason}",
            details={"action": action, "reason": reason},
            error_code=f"INVALID_{action.upper()}",
        )


class NotYourTurnError(InvalidOperationError):
    """Raised when a monster submits an action while it is not the turn owner."""

    REASON = "not_your_turn"

    def __init__(self, battle_id: int, monster_id: int, current_turn_monster_id: int) -> None:
        self.battle_id = battle_id
        self.monster_id = monster_id
        self.current_turn_monster_id = current_turn_monster_id
        super().__init__("attack", f"monster {monster_id} does not own the current turn")
        self.details.update(
            {
                "battle_id": battle_id,
                "monster_id": monster_id,
                "current_turn_monster_id": current_turn_monster_id,
            }
        )


class BattleAlreadyFinishedError(InvalidOperationError):
    """Raised when an action targets a battle whose winner is already set."""

    REASON = "battle_finished"

    def __init__(self, battle_id: int, winner_monster_id: int) -> None:
        self.battle_id = battle_id
        self.winner_monster_id = winner_monster_id
        super().__init__("attack", "battle already has a winner")
        self.details.update({"battle_id": battle_id, "winner_monster_id": winner_monster_id})


class BattleConflictError(ArenaDomainException):
    """Raised when a record write loses a version race."""

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True
    REASON = "conflict"

    def __init__(self, battle_id: int, expected_version: int) -> None:
        self.battle_id = battle_id
        self.expected_version = expected_version
        super().__init__(
            f"Battle {battle_id} was modified concurrently",
            details={"battle_id": battle_id, "expected_version": expected_version},
            error_code="BATTLE_CONFLICT",
        )


class BattleBusyError(ArenaDomainException):
    """Raised when the per-battle lock cannot be acquired in time."""

    DEFAULT_SEVERITY = ErrorSeverity.DEBUG
    DEFAULT_RETRYABLE = True
    REASON = "busy"

    def __init__(self, battle_id: int) -> None:
        self.battle_id = battle_id
        super().__init__(
            f"Battle {battle_id} is busy",
            details={"battle_id": battle_id},
            error_code="BATTLE_BUSY",
        )


class InsufficientResourcesError(ArenaDomainException):
    """
    Raised when a user or monster lacks a resource needed to start a battle.

    Args:
        resource: Name of the resource type (e.g., "energy", "satiety")
        required: Amount required
        current: Amount available
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    REASON = "insufficient_resources"

    def __init__(self, resource: str, required: int, current: int) -> None:
        self.resource = resource
        self.required = required
        self.current = current
        super().__init__(
            f"Insufficient {resource}: need {required:,}, have {current:,}",
            details={
                "resource": resource,
                "required": required,
                "current": current,
                "deficit": required - current,
            },
            error_code=f"INSUFFICIENT_{resource.upper()}",
        )


class ValidationError(ArenaDomainException):
    """
    Raised when input fails domain validation.

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    REASON = "invalid_payload"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )
