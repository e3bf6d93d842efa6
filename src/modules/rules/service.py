"""
Rules Service

Purpose
-------
Provide the current `BattleRules` to the battle engine. Rules are read from
the `rules` section of the YAML configuration via ConfigManager, validated
with pydantic, and cached in an injected process-scoped `TTLCache`.

Fallback Chain
--------------
1. `rules` section from ConfigManager, validated
2. Hard-coded `BattleRules.default()` when the section is missing or invalid

Configuration Keys
------------------
- rules                          : dict (the full rules document)
- rules_cache.ttl_seconds        : float (default 60)

Design Notes
------------
- `get_rules()` is synchronous: ConfigManager reads are in-memory
- `invalidate()` drops the cached copy; `refresh()` also reloads the YAML
"""

from __future__ import annotations

from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from src.core.cache.ttl_cache import TTLCache
from src.core.config.manager import ConfigManager
from src.core.logging.logger import get_logger
from src.modules.rules.schema import BattleRules

logger = get_logger(__name__)

_CACHE_KEY = "battle_rules"


class RulesService:
    """
    Cached provider of validated battle rules.

    Example
    -------
    >>> rules_service = RulesService(cache=TTLCache(60, name="rules"))
    >>> rules = rules_service.get_rules()
    >>> rules.battle.turn_time_limit_ms
    15000
    """

    CONFIG_KEY = "rules"

    def __init__(
        self,
        cache: Optional[TTLCache[BattleRules]] = None,
        config_manager: type[ConfigManager] = ConfigManager,
    ) -> None:
        self._config = config_manager
        if cache is None:
            ttl = self._config.get("rules_cache.ttl_seconds", 60)
            cache = TTLCache(float(ttl), name="rules")
        self._cache = cache

    def get_rules(self, *, force: bool = False) -> BattleRules:
        if not force:
            cached = self._cache.get(_CACHE_KEY)
            if cached is not None:
                return cached

        rules = self._load()
        self._cache.set(_CACHE_KEY, rules)
        return rules

    def invalidate(self) -> None:
        self._cache.invalidate(_CACHE_KEY)

    async def refresh(self) -> BattleRules:
        """Reload YAML from disk and rebuild the cached rules."""
        await self._config.reload()
        self.invalidate()
        return self.get_rules(force=True)

    def _load(self) -> BattleRules:
        raw = self._config.get(self.CONFIG_KEY)
        if not isinstance(raw, dict):
            logger.warning(
                "No rules section in configuration; using built-in defaults",
                extra={"config_key": self.CONFIG_KEY},
            )
            return BattleRules.default()

        try:
            rules = BattleRules.model_validate(raw)
        except PydanticValidationError as exc:
            logger.error(
                "Rules configuration invalid; using built-in defaults",
                extra={
                    "config_key": self.CONFIG_KEY,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                    "error_count": exc.error_count(),
                },
            )
            return BattleRules.default()

        logger.info(
            "Battle rules loaded",
            extra={
                "rules_version": rules.version,
                "turn_time_limit_ms": rules.battle.turn_time_limit_ms,
                "grace_ms": rules.battle.grace_ms,
                "reward_brackets": len(rules.reward.levels),
            },
        )
        return rules
