"""Shared domain building blocks: exceptions and the service base class."""

from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import (
    ArenaDomainException,
    BattleAlreadyFinishedError,
    BattleBusyError,
    BattleConflictError,
    BattleNotFoundError,
    InsufficientResourcesError,
    InvalidOperationError,
    NotFoundError,
    NotYourTurnError,
    ValidationError,
)

__all__ = [
    "BaseService",
    "ArenaDomainException",
    "BattleAlreadyFinishedError",
    "BattleBusyError",
    "BattleConflictError",
    "BattleNotFoundError",
    "InsufficientResourcesError",
    "InvalidOperationError",
    "NotFoundError",
    "NotYourTurnError",
    "ValidationError",
]
