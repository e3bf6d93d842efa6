"""
Battle Module
=============

Real-time PvP battles between two monsters:
- BattleRecord: live battle state kept in Redis
- BattleService: join, ready and turn submission under a per-battle lock
- BattleFactory: battle row creation and record materialization
- BattleCompletionPipeline: finalization, settlement and rewards
- BattleGateway: Socket.IO event handlers

Turn rules live in `resolver`, timing in `timer`, knockout detection in
`win_detector`.
"""

from src.modules.battle.record import BattleRecord
from src.modules.battle.service import BattleService, SubmitResult
from src.modules.battle.factory import BattleFactory
from src.modules.battle.completion import BattleCompletionPipeline
from src.modules.battle.gateway import BattleGateway

__all__ = [
    "BattleRecord",
    "BattleService",
    "SubmitResult",
    "BattleFactory",
    "BattleCompletionPipeline",
    "BattleGateway",
]
