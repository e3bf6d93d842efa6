"""
Audit Event Consumer
====================

Purpose
-------
Subscribe to the battle audit events emitted by AuditLogger and write them
to the dedicated `arena.audit` logger, one structured line per record.

Consumes
--------
- "audit.battle.recorded" (from AuditLogger)
    Payload shape:
    {
        "timestamp": ISO8601 string,
        "battle_id": int,
        "record_type": str,   # "battle.finished" | "battle.turn"
        "details": dict,
        "context": str,
        "meta": dict,
    }

Responsibilities
----------------
- Subscribe at LOW priority so audit never delays gameplay listeners
- Forward each record to the audit logger with the payload in `extra`
- Track received / written / failed counts

Non-Responsibilities
--------------------
- No business logic, no validation (AuditLogger already validates)
- No persistence beyond the logging handlers

Example Usage
-------------
>>> consumer = AuditConsumer(event_bus)
>>> consumer.start()
>>> consumer.get_status()["events_received"]
0
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from src.core.event.types import EventPayload, ListenerPriority
from src.core.infra.audit_logger import AuditLogger
from src.core.logging.logger import get_logger

if TYPE_CHECKING:
    from src.core.event.bus import EventBus

logger = get_logger(__name__)

AUDIT_LOGGER_NAME = "arena.audit"


class AuditConsumer:
    """Writes audit events from the EventBus to the audit logger."""

    LISTENER_ID = "audit.consumer"

    def __init__(self, event_bus: EventBus, sink: Optional[logging.Logger] = None) -> None:
        self._event_bus = event_bus
        self._sink = sink or logging.getLogger(AUDIT_LOGGER_NAME)
        self._is_running = False

        self._events_received = 0
        self._events_written = 0
        self._events_failed = 0

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE
    # ═══════════════════════════════════════════════════════════════════════

    def start(self) -> None:
        if self._is_running:
            logger.warning("AuditConsumer already running")
            return

        self._event_bus.subscribe(
            AuditLogger.EVENT_NAME,
            self.handle,
            priority=ListenerPriority.LOW,
            identifier=self.LISTENER_ID,
        )
        self._is_running = True
        logger.info("AuditConsumer started", extra={"event_name": AuditLogger.EVENT_NAME})

    def stop(self) -> None:
        if not self._is_running:
            return
        self._event_bus.unsubscribe(AuditLogger.EVENT_NAME, self.LISTENER_ID)
        self._is_running = False
        logger.info("AuditConsumer stopped", extra=self.get_status())

    # ═══════════════════════════════════════════════════════════════════════
    # EVENT HANDLER
    # ═══════════════════════════════════════════════════════════════════════

    async def handle(self, payload: EventPayload) -> None:
        self._events_received += 1
        try:
            self._sink.info(
                "%s battle=%s",
                payload.get("record_type"),
                payload.get("battle_id"),
                extra={
                    "audit_timestamp": payload.get("timestamp"),
                    "battle_id": payload.get("battle_id"),
                    "record_type": payload.get("record_type"),
                    "audit_context": payload.get("context"),
                    "details": payload.get("details", {}),
                    "meta": payload.get("meta", {}),
                },
            )
        except (TypeError, ValueError) as exc:
            self._events_failed += 1
            logger.error(
                "Failed to write audit record",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return
        self._events_written += 1

    # ═══════════════════════════════════════════════════════════════════════
    # MONITORING
    # ═══════════════════════════════════════════════════════════════════════

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self._is_running,
            "events_received": self._events_received,
            "events_written": self._events_written,
            "events_failed": self._events_failed,
        }
