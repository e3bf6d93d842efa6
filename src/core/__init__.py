"""
Core infrastructure layer for the arena.

Purpose
-------
Single import surface for the core infrastructure subsystems:

- Configuration management (Config, ConfigManager)
- Database subsystem (DatabaseService)
- Redis subsystem (RedisService for records and locking)
- Logging (structured logging, logger factory)
- Infrastructure exceptions

Design Decisions
----------------
- Thin: no logic, no configuration, no I/O.
- Domain exceptions live in `src.modules.shared.exceptions` and are not
  re-exported here.
"""

from __future__ import annotations

from src.core.config import Config, ConfigManager
from src.core.database import DatabaseService
from src.core.exceptions import (
    ArenaInfrastructureException,
    BattleRecordCorruptedError,
    CircuitBreakerError,
    ErrorSeverity,
    LockAcquireTimeoutError,
    NotificationError,
)
from src.core.logging import get_logger, setup_logging
from src.core.redis import RedisService

__all__ = [
    # Configuration
    "Config",
    "ConfigManager",
    # Database
    "DatabaseService",
    # Redis
    "RedisService",
    # Logging
    "setup_logging",
    "get_logger",
    # Infrastructure Exceptions
    "ArenaInfrastructureException",
    "BattleRecordCorruptedError",
    "CircuitBreakerError",
    "ErrorSeverity",
    "LockAcquireTimeoutError",
    "NotificationError",
]
