"""
Battle Record Model
===================

Purpose
-------
In-memory representation of one live battle: the full mutable combat state
shared by both participants while the battle is in Redis.

Domain
------
- Identity of both sides (monster, owner, level)
- Combat state: HP, stamina, immutable stat and skill snapshots
- Turn state: owner, number, timing window
- The pending active defense (at most one)
- Append-only turn log and the last-action summary
- Session plumbing (socket ids, ready flags, chat correlation)
- Terminal state: winner and granted rewards

Design Decisions
----------------
- Snapshots (`MonsterStats`, `SkillSnapshot`) are frozen dataclasses taken
  at creation; live monster rows are never consulted mid-battle
- `BattleRecord` itself is mutable: the resolver mutates it in place and
  the repository writes it back whole
- `version` is bumped by the repository on every successful write
- Wire/storage encoding lives in `serializer.py`, not here

Dependencies
------------
None beyond the shared enums.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from src.database.models.enums import BattleAction

EFFECT_EVADED = "evaded"
EFFECT_EVASION = "evasion"
EFFECT_EVASION_READY = "evasion_ready"

VALID_EFFECTS = (None, EFFECT_EVADED, EFFECT_EVASION, EFFECT_EVASION_READY)


# ============================================================================
# Snapshots
# ============================================================================


@dataclass(frozen=True)
class MonsterStats:
    """Monster stats snapshot taken at battle creation."""

    health_points: int
    stamina: int
    strength: int
    defense: int
    evasion: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> MonsterStats:
        return cls(
            health_points=int(data["health_points"]),
            stamina=int(data["stamina"]),
            strength=int(data["strength"]),
            defense=int(data["defense"]),
            evasion=int(data["evasion"]),
        )


@dataclass(frozen=True)
class SkillSnapshot:
    """
    Attack or defense skill as equipped at battle creation.

    `strength` multiplies the attacker's strength; `defense` and `evasion`
    multiply the defender's base stats when the skill is used as a stance.
    """

    id: int
    name: str
    strength: float = 0.0
    defense: float = 0.0
    evasion: float = 0.0
    energy_cost: int = 0
    cooldown: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SkillSnapshot:
        return cls(
            id=int(data["id"]),
            name=str(data["name"]),
            strength=float(data.get("strength") or 0.0),
            defense=float(data.get("defense") or 0.0),
            evasion=float(data.get("evasion") or 0.0),
            energy_cost=int(data.get("energy_cost") or 0),
            cooldown=int(data.get("cooldown") or 0),
        )


@dataclass(frozen=True)
class ActiveDefense:
    """Defensive stance committed by `monster_id`, consumed by the next hit."""

    monster_id: int
    name: str
    defense: float
    evasion: float
    cooldown: int
    energy_cost: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ActiveDefense:
        return cls(
            monster_id=int(data["monster_id"]),
            name=str(data["name"]),
            defense=float(data["defense"]),
            evasion=float(data["evasion"]),
            cooldown=int(data["cooldown"]),
            energy_cost=int(data["energy_cost"]),
        )

    @classmethod
    def from_skill(cls, monster_id: int, skill: SkillSnapshot) -> ActiveDefense:
        return cls(
            monster_id=monster_id,
            name=skill.name,
            defense=skill.defense,
            evasion=skill.evasion,
            cooldown=skill.cooldown,
            energy_cost=skill.energy_cost,
        )


# ============================================================================
# Logs
# ============================================================================


@dataclass(frozen=True)
class BattleLogEntry:
    """One turn event. Never mutated once appended."""

    from_monster_id: int
    to_monster_id: int
    action: BattleAction
    name: str
    modifier: float
    damage: int
    block: int
    effect: Optional[str]
    cooldown: int
    sp_cost: int
    turn_skip: int
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["action"] = self.action.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BattleLogEntry:
        effect = data.get("effect")
        if effect not in VALID_EFFECTS:
            raise ValueError(f"unknown log effect {effect!r}")
        return cls(
            from_monster_id=int(data["from_monster_id"]),
            to_monster_id=int(data["to_monster_id"]),
            action=BattleAction(data["action"]),
            name=str(data["name"]),
            modifier=float(data["modifier"]),
            damage=int(data["damage"]),
            block=int(data["block"]),
            effect=effect,
            cooldown=int(data["cooldown"]),
            sp_cost=int(data["sp_cost"]),
            turn_skip=int(data["turn_skip"]),
            timestamp=str(data["timestamp"]),
        )


@dataclass(frozen=True)
class LastAction:
    """UI-facing summary of the most recent turn (derived, not authoritative)."""

    monster_id: int
    action_name: str
    damage: int
    stamina: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> LastAction:
        return cls(
            monster_id=int(data["monster_id"]),
            action_name=str(data["action_name"]),
            damage=int(data["damage"]),
            stamina=int(data["stamina"]),
        )


# ============================================================================
# Rewards
# ============================================================================


@dataclass(frozen=True)
class GrantedItem:
    id: int
    name: str
    quantity: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> GrantedItem:
        return cls(id=int(data["id"]), name=str(data["name"]), quantity=int(data["quantity"]))


@dataclass
class RewardGrant:
    """What one side actually received; `exp` is always set after completion."""

    exp: Optional[int] = None
    food: Optional[GrantedItem] = None
    mutagen: Optional[GrantedItem] = None
    skill: Optional[GrantedItem] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exp": self.exp,
            "food": self.food.to_dict() if self.food else None,
            "mutagen": self.mutagen.to_dict() if self.mutagen else None,
            "skill": self.skill.to_dict() if self.skill else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> RewardGrant:
        def item(key: str) -> Optional[GrantedItem]:
            raw = data.get(key)
            return GrantedItem.from_dict(raw) if raw else None

        exp = data.get("exp")
        return cls(
            exp=int(exp) if exp is not None else None,
            food=item("food"),
            mutagen=item("mutagen"),
            skill=item("skill"),
        )


# ============================================================================
# Battle Record
# ============================================================================


@dataclass
class BattleRecord:
    """
    Full live state of one battle.

    Invariants:
        - current_turn_monster_id is one of the two monster ids
        - 0 <= hp <= snapshot health_points on both sides
        - winner_monster_id is set at most once; no turn mutates after it
    """

    battle_id: int
    challenger_monster_id: int
    opponent_monster_id: int
    challenger_user_id: str
    opponent_user_id: str
    challenger_monster_level: int
    opponent_monster_level: int

    # Combat state
    challenger_hp: int
    opponent_hp: int
    challenger_stamina: int
    opponent_stamina: int
    challenger_stats: MonsterStats
    opponent_stats: MonsterStats

    # Skill catalogs
    challenger_attacks: List[SkillSnapshot]
    challenger_defenses: List[SkillSnapshot]
    opponent_attacks: List[SkillSnapshot]
    opponent_defenses: List[SkillSnapshot]

    # Turn state
    current_turn_monster_id: int
    turn_time_limit_ms: int
    turn_number: int = 0
    turn_start_time_ms: Optional[int] = None
    turn_ends_at_ms: Optional[int] = None
    grace_ms: Optional[int] = None
    server_now_ms: int = 0

    active_defense: Optional[ActiveDefense] = None
    logs: List[BattleLogEntry] = field(default_factory=list)
    last_action_log: Optional[LastAction] = None

    # Session
    challenger_socket_id: Optional[str] = None
    opponent_socket_id: Optional[str] = None
    challenger_ready: bool = False
    opponent_ready: bool = False
    chat_id: Optional[str] = None

    # Terminal
    winner_monster_id: Optional[int] = None
    challenger_reward: Optional[RewardGrant] = None
    opponent_reward: Optional[RewardGrant] = None

    version: int = 0

    # ========================================================================
    # Side helpers
    # ========================================================================

    @property
    def is_finished(self) -> bool:
        return self.winner_monster_id is not None

    def is_participant(self, monster_id: int) -> bool:
        return monster_id in (self.challenger_monster_id, self.opponent_monster_id)

    def is_challenger(self, monster_id: int) -> bool:
        return monster_id == self.challenger_monster_id

    def _require_participant(self, monster_id: int) -> bool:
        if not self.is_participant(monster_id):
            raise ValueError(f"monster {monster_id} is not in battle {self.battle_id}")
        return self.is_challenger(monster_id)

    def opponent_of(self, monster_id: int) -> int:
        if self._require_participant(monster_id):
            return self.opponent_monster_id
        return self.challenger_monster_id

    def hp_of(self, monster_id: int) -> int:
        return self.challenger_hp if self._require_participant(monster_id) else self.opponent_hp

    def set_hp(self, monster_id: int, value: int) -> None:
        if self._require_participant(monster_id):
            self.challenger_hp = value
        else:
            self.opponent_hp = value

    def stamina_of(self, monster_id: int) -> int:
        if self._require_participant(monster_id):
            return self.challenger_stamina
        return self.opponent_stamina

    def set_stamina(self, monster_id: int, value: int) -> None:
        if self._require_participant(monster_id):
            self.challenger_stamina = value
        else:
            self.opponent_stamina = value

    def stats_of(self, monster_id: int) -> MonsterStats:
        if self._require_participant(monster_id):
            return self.challenger_stats
        return self.opponent_stats

    def attacks_of(self, monster_id: int) -> List[SkillSnapshot]:
        if self._require_participant(monster_id):
            return self.challenger_attacks
        return self.opponent_attacks

    def defenses_of(self, monster_id: int) -> List[SkillSnapshot]:
        if self._require_participant(monster_id):
            return self.challenger_defenses
        return self.opponent_defenses

    def level_of(self, monster_id: int) -> int:
        if self._require_participant(monster_id):
            return self.challenger_monster_level
        return self.opponent_monster_level

    def user_of(self, monster_id: int) -> str:
        if self._require_participant(monster_id):
            return self.challenger_user_id
        return self.opponent_user_id

    def reward_of(self, monster_id: int) -> RewardGrant:
        """Return the side's reward grant, creating an empty one if needed."""
        if self._require_participant(monster_id):
            if self.challenger_reward is None:
                self.challenger_reward = RewardGrant()
            return self.challenger_reward
        if self.opponent_reward is None:
            self.opponent_reward = RewardGrant()
        return self.opponent_reward

    def socket_ids(self) -> List[str]:
        return [sid for sid in (self.challenger_socket_id, self.opponent_socket_id) if sid]

    def attach_socket(self, monster_id: int, socket_id: str, *, ready: bool) -> None:
        if self._require_participant(monster_id):
            self.challenger_socket_id = socket_id
            self.challenger_ready = ready
        else:
            self.opponent_socket_id = socket_id
            self.opponent_ready = ready

    @property
    def both_ready(self) -> bool:
        return self.challenger_ready and self.opponent_ready

    # ========================================================================
    # Client view
    # ========================================================================

    def to_client_dict(self) -> Dict[str, Any]:
        """Full record as plain JSON types, sent as `responseBattle`."""
        return {
            "battle_id": self.battle_id,
            "challenger_monster_id": self.challenger_monster_id,
            "opponent_monster_id": self.opponent_monster_id,
            "challenger_user_id": self.challenger_user_id,
            "opponent_user_id": self.opponent_user_id,
            "challenger_monster_level": self.challenger_monster_level,
            "opponent_monster_level": self.opponent_monster_level,
            "challenger_hp": self.challenger_hp,
            "opponent_hp": self.opponent_hp,
            "challenger_stamina": self.challenger_stamina,
            "opponent_stamina": self.opponent_stamina,
            "challenger_stats": self.challenger_stats.to_dict(),
            "opponent_stats": self.opponent_stats.to_dict(),
            "challenger_attacks": [skill.to_dict() for skill in self.challenger_attacks],
            "challenger_defenses": [skill.to_dict() for skill in self.challenger_defenses],
            "opponent_attacks": [skill.to_dict() for skill in self.opponent_attacks],
            "opponent_defenses": [skill.to_dict() for skill in self.opponent_defenses],
            "current_turn_monster_id": self.current_turn_monster_id,
            "turn_number": self.turn_number,
            "turn_start_time_ms": self.turn_start_time_ms,
            "turn_ends_at_ms": self.turn_ends_at_ms,
            "turn_time_limit_ms": self.turn_time_limit_ms,
            "grace_ms": self.grace_ms,
            "server_now_ms": self.server_now_ms,
            "active_defense": self.active_defense.to_dict() if self.active_defense else None,
            "logs": [entry.to_dict() for entry in self.logs],
            "last_action_log": self.last_action_log.to_dict() if self.last_action_log else None,
            "challenger_socket_id": self.challenger_socket_id,
            "opponent_socket_id": self.opponent_socket_id,
            "challenger_ready": self.challenger_ready,
            "opponent_ready": self.opponent_ready,
            "chat_id": self.chat_id,
            "winner_monster_id": self.winner_monster_id,
            "challenger_reward": self.challenger_reward.to_dict() if self.challenger_reward else None,
            "opponent_reward": self.opponent_reward.to_dict() if self.opponent_reward else None,
            "version": self.version,
        }
