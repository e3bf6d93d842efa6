"""
Battle Socket Gateway
=====================

Purpose
-------
Socket.IO transport adapter for live battles (python-socketio AsyncServer
on aiohttp). Validates inbound payloads, calls BattleService and
broadcasts the outcome.

Inbound Events
--------------
- getBattle   {battle_id, monster_id}
- startBattle {battle_id, monster_id}
- attack      {battle_id, monster_id, attack_id?, defense_id?}

Outbound Event
--------------
- responseBattle: the full record on success, sent to both attached
  sockets; `{"rejected": true, "reason": ...}` on rejection, sent to the
  caller and to any sockets attached to the record

Design Notes
------------
- No game logic here; this module only translates between the wire and
  BattleService
- Malformed payloads are rejected with reason "invalid_payload"
- Unexpected errors are logged with traceback and answered with
  reason "internal_error"
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional, Type, TypeVar

import socketio
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from src.core.logging.logger import get_logger
from src.modules.battle.service import BattleService, SubmitResult
from src.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)

RESPONSE_EVENT = "responseBattle"
REASON_INTERNAL = "internal_error"

P = TypeVar("P", bound=BaseModel)


# ============================================================================
# Payloads
# ============================================================================


class BattleRef(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    battle_id: int = Field(gt=0)
    monster_id: int = Field(gt=0)


class AttackPayload(BattleRef):
    attack_id: Optional[int] = Field(default=None, gt=0)
    defense_id: Optional[int] = Field(default=None, gt=0)


def parse_payload(model: Type[P], data: Any) -> P:
    """Validate an inbound payload; raises the domain ValidationError."""
    if not isinstance(data, dict):
        raise ValidationError("payload", "expected a JSON object")
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        field_name = ".".join(str(part) for part in first.get("loc", ())) or "payload"
        raise ValidationError(field_name, first.get("msg", "invalid value")) from exc


# ============================================================================
# Gateway
# ============================================================================


class BattleGateway:
    """Binds battle events on a Socket.IO server to BattleService."""

    def __init__(self, sio: socketio.AsyncServer, battle_service: BattleService) -> None:
        self._sio = sio
        self._battles = battle_service

    def register(self) -> None:
        self._sio.on("connect", handler=self.on_connect)
        self._sio.on("disconnect", handler=self.on_disconnect)
        self._sio.on("getBattle", handler=self.on_get_battle)
        self._sio.on("startBattle", handler=self.on_start_battle)
        self._sio.on("attack", handler=self.on_attack)

    # =========================================================================
    # HANDLERS
    # =========================================================================

    async def on_connect(self, sid: str, environ: Dict[str, Any], auth: Any = None) -> None:
        logger.debug("Socket connected", extra={"socket_id": sid})

    async def on_disconnect(self, sid: str, *args: Any) -> None:
        logger.debug("Socket disconnected", extra={"socket_id": sid})

    async def on_get_battle(self, sid: str, data: Any) -> None:
        await self._handle(
            sid,
            "getBattle",
            BattleRef,
            data,
            lambda ref: self._battles.get_battle(ref.battle_id, ref.monster_id, sid),
        )

    async def on_start_battle(self, sid: str, data: Any) -> None:
        await self._handle(
            sid,
            "startBattle",
            BattleRef,
            data,
            lambda ref: self._battles.start_battle(ref.battle_id, ref.monster_id, sid),
        )

    async def on_attack(self, sid: str, data: Any) -> None:
        await self._handle(
            sid,
            "attack",
            AttackPayload,
            data,
            lambda p: self._battles.submit_action(p.battle_id, p.monster_id, p.attack_id, p.defense_id, sid),
        )

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _handle(
        self,
        sid: str,
        event: str,
        model: Type[P],
        data: Any,
        call: Callable[[P], Awaitable[SubmitResult]],
    ) -> None:
        try:
            payload = parse_payload(model, data)
        except ValidationError as exc:
            logger.info(
                "Invalid socket payload",
                extra={"socket_id": sid, "event": event, "error": str(exc)},
            )
            await self._emit(sid, SubmitResult.reject(exc.reason))
            return

        try:
            result = await call(payload)
        except Exception as exc:
            logger.error(
                "Unhandled error in battle socket handler",
                extra={
                    "socket_id": sid,
                    "event": event,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            result = SubmitResult.reject(REASON_INTERNAL)

        await self._emit(sid, result)

    async def _emit(self, sid: str, result: SubmitResult) -> None:
        payload = result.to_payload()
        targets = list(result.socket_ids)
        if sid not in targets:
            targets.insert(0, sid)

        for target in targets:
            await self._sio.emit(RESPONSE_EVENT, payload, to=target)
