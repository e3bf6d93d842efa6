"""
Base Service Foundation

Purpose
-------
Foundational class for arena domain services. Services implement business
logic, run transactions through DatabaseService, enforce rules, and emit
domain events.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Config manager handle for subclasses
- Event emission helpers
- Validation helpers raising domain exceptions

What this class does NOT do:
- Manage database transactions (that's DatabaseService's job)
- Touch the socket transport

Usage
-----
    class BattleFactory(BaseService):
        def __init__(self, rules_service, config_manager, event_bus, logger):
            super().__init__(config_manager, event_bus, logger)
            self._rules = rules_service
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from src.modules.shared.exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus


class BaseService:
    """
    Base class for domain services.

    Args:
        config_manager: Configuration manager (class or instance exposing `get`)
        event_bus: Event bus for cross-module communication
        logger: Structured logger instance
    """

    def __init__(
        self,
        config_manager: type[ConfigManager] | ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Emit a domain event for cross-module communication."""
        await self._events.publish(event_type, {**data, **(context or {})})

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    def log_error(
        self,
        operation: str,
        error: Exception,
        **context: Any,
    ) -> None:
        """Log a service error with full context."""
        self.log.error(
            f"Service error during {operation}: {error}",
            extra={
                "operation": operation,
                "error": str(error),
                "error_type": type(error).__name__,
                **context,
            },
        )

    def validate_positive_int(self, value: int, name: str) -> None:
        """
        Validate that a value is a positive integer.

        Raises:
            ValidationError: If value is not a positive int
        """
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ValidationError(
                name, f"{name} must be a positive integer, got {value}"
            )
