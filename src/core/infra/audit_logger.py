"""
Battle Audit Trail Logger.

Purpose
-------
Event-driven audit trail for finished battles. Shapes structured audit
records and publishes them to the EventBus for decoupled sinks.

This module is a **pure event producer**: it normalizes audit events and
publishes them. Persistence or forwarding is handled by the audit consumer
(`src.modules.audit.consumer`), which subscribes to the audit event.

Responsibilities
----------------
- Accept battle audit context (battle_id, record_type, details, context)
- Normalize into the canonical audit event shape
- Publish to EventBus: "audit.battle.recorded"
- Track audit production metrics (counts, errors, timings)
- Provide helpers for the battle summary and per-turn records

Non-Responsibilities
--------------------
- Database persistence
- Gameplay correctness (audit failures never affect battle outcome)

Canonical Event Shape
---------------------
Event name: "audit.battle.recorded"

Payload (EventPayload):
{
    "timestamp": str,       # ISO8601 UTC timestamp
    "battle_id": int,
    "record_type": str,     # "battle.finished" | "battle.turn"
    "details": dict,        # Structured record data
    "context": str,         # Subsystem origin
    "meta": dict,           # Optional metadata (correlation_id, etc.)
}

Design Decisions
----------------
**Non-Blocking**:
    Publish failures are logged and swallowed; a ValidationError for a
    malformed record is raised to the caller.

Usage Examples
--------------
    await AuditLogger.log_battle_summary(record, finished_at=now)
    await AuditLogger.log_battle_turns(record)
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from src.core.event import EventPayload, event_bus
from src.core.logging.logger import get_logger
from src.modules.shared.exceptions import ValidationError

if TYPE_CHECKING:
    from src.modules.battle.record import BattleRecord

logger = get_logger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# AUDIT METRICS
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class AuditMetrics:
    """In-memory counters for audit event production."""

    events_emitted: int = 0
    validation_errors: int = 0
    publish_errors: int = 0
    total_log_time_ms: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        total_events = max(self.events_emitted, 1)
        error_events = self.validation_errors + self.publish_errors
        return {
            "events_emitted": self.events_emitted,
            "validation_errors": self.validation_errors,
            "publish_errors": self.publish_errors,
            "total_errors": error_events,
            "error_rate_percent": round((error_events / total_events) * 100.0, 2),
            "avg_log_time_ms": round(self.total_log_time_ms / total_events, 3),
            "total_log_time_ms": round(self.total_log_time_ms, 2),
        }


_metrics = AuditMetrics()


# ═════════════════════════════════════════════════════════════════════════════
# AUDIT LOGGER
# ═════════════════════════════════════════════════════════════════════════════


class AuditLogger:
    """
    Write-only audit logger for battle records.

    All audit events flow through this class to keep one event shape.
    """

    EVENT_NAME: str = "audit.battle.recorded"

    RECORD_BATTLE_FINISHED: str = "battle.finished"
    RECORD_BATTLE_TURN: str = "battle.turn"

    # ═════════════════════════════════════════════════════════════════════════
    # CORE API
    # ═════════════════════════════════════════════════════════════════════════

    @classmethod
    async def log(
        cls,
        *,
        battle_id: int,
        record_type: str,
        details: Mapping[str, Any],
        context: Optional[str] = None,
        meta: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """
        Publish a canonical battle audit event.

        Raises
        ------
        ValidationError
            If battle_id or record_type is malformed.

        Notes
        -----
        Publish failures are logged but never raised.
        """
        start_time = time.perf_counter()

        if not isinstance(battle_id, int) or isinstance(battle_id, bool) or battle_id <= 0:
            _metrics.validation_errors += 1
            raise ValidationError("battle_id", f"must be a positive integer, got {battle_id!r}")
        if not record_type or not isinstance(record_type, str):
            _metrics.validation_errors += 1
            raise ValidationError("record_type", "must be a non-empty string")

        payload: EventPayload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "battle_id": battle_id,
            "record_type": record_type,
            "details": dict(details),
            "context": context or "battle",
            "meta": dict(meta) if meta is not None else {},
        }

        try:
            await event_bus.publish(cls.EVENT_NAME, payload)
        except Exception as exc:
            _metrics.publish_errors += 1
            logger.error(
                "Failed to publish audit event",
                extra={
                    "battle_id": battle_id,
                    "record_type": record_type,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        _metrics.events_emitted += 1
        _metrics.total_log_time_ms += elapsed_ms

        logger.debug(
            "Audit event emitted",
            extra={
                "event_name": cls.EVENT_NAME,
                "battle_id": battle_id,
                "record_type": record_type,
                "log_time_ms": round(elapsed_ms, 3),
            },
        )

    # ═════════════════════════════════════════════════════════════════════════
    # BATTLE HELPERS
    # ═════════════════════════════════════════════════════════════════════════

    @classmethod
    async def log_battle_summary(
        cls,
        record: BattleRecord,
        *,
        finished_at: Optional[datetime] = None,
        meta: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Emit the `battle.finished` summary for a terminal record."""
        finished = finished_at or datetime.now(timezone.utc)
        details: Dict[str, Any] = {
            "winner_monster_id": record.winner_monster_id,
            "challenger_monster_id": record.challenger_monster_id,
            "opponent_monster_id": record.opponent_monster_id,
            "challenger_stats": record.challenger_stats.to_dict(),
            "opponent_stats": record.opponent_stats.to_dict(),
            "challenger_final_hp": record.challenger_hp,
            "opponent_final_hp": record.opponent_hp,
            "challenger_final_stamina": record.challenger_stamina,
            "opponent_final_stamina": record.opponent_stamina,
            "turn_number": record.turn_number,
            "finished_at": finished.isoformat(),
            "log_count": len(record.logs),
        }
        await cls.log(
            battle_id=record.battle_id,
            record_type=cls.RECORD_BATTLE_FINISHED,
            details=details,
            context="battle.completion",
            meta=meta,
        )

    @classmethod
    async def log_battle_turns(
        cls,
        record: BattleRecord,
        *,
        meta: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """Emit one `battle.turn` event per log entry; returns the count."""
        emitted = 0
        for index, entry in enumerate(record.logs, start=1):
            await cls.log(
                battle_id=record.battle_id,
                record_type=cls.RECORD_BATTLE_TURN,
                details={"turn": index, **entry.to_dict()},
                context="battle.completion",
                meta=meta,
            )
            emitted += 1
        return emitted

    # ═════════════════════════════════════════════════════════════════════════
    # METRICS API
    # ═════════════════════════════════════════════════════════════════════════

    @staticmethod
    def get_metrics() -> Dict[str, Any]:
        return _metrics.as_dict()
