"""
ConfigManager: dynamic, YAML-backed balance configuration for Monster Arena.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable battle configuration.
- Back configuration with YAML files in the `config/` directory.
- Serve reads from an in-memory cache with metrics.
- Allow an explicit reload so balance changes apply without a restart.

Responsibilities
----------------
- Load and deep-merge every YAML file under `config/`.
- Serve `get("battle.max_turn_ms", default)` reads with fallback to defaults.
- Track hits, misses, fallbacks and reload counts for health snapshots.

Key Design Decisions
--------------------
- YAML is the single source of truth; there is no database override layer.
- Later files win on key conflicts (files are merged in sorted path order).
- Reads never raise; unknown keys resolve to the caller's default.
- Typed interpretation of the battle section lives in `RulesService`, which
  re-reads through this manager when its own cache expires.

Dependencies
------------
- PyYAML: `yaml.safe_load` for config files.
- `src.core.logging.logger.get_logger`: structured logging interface.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, MutableMapping, Optional

import yaml

from src.core.config.config import Config
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Exceptions
# ============================================================================


class ConfigManagerError(RuntimeError):
    """Base error type for ConfigManager-related failures."""


class ConfigInitializationError(ConfigManagerError):
    """Raised when ConfigManager cannot initialize correctly."""


__all__ = ["ConfigManager", "ConfigManagerError", "ConfigInitializationError"]


# ============================================================================
# Metrics
# ============================================================================


@dataclass(slots=True)
class ConfigMetrics:
    """Counters for ConfigManager reads and reloads."""

    gets: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    fallback_to_defaults: int = 0
    reload_count: int = 0
    errors: int = 0
    total_get_time_ms: float = 0.0

    @property
    def hit_rate(self) -> float:
        lookups = self.cache_hits + self.cache_misses
        return (self.cache_hits / lookups * 100) if lookups else 0.0

    @property
    def avg_get_time_ms(self) -> float:
        return (self.total_get_time_ms / self.gets) if self.gets else 0.0

    def snapshot(self) -> Dict[str, Any]:
        data = asdict(self)
        data["hit_rate"] = round(self.hit_rate, 2)
        data["avg_get_time_ms"] = round(self.avg_get_time_ms, 4)
        return data


# ============================================================================
# ConfigManager
# ============================================================================


class ConfigManager:
    """
    Dynamic balance configuration with an in-memory cache.

    Features
    --------
    - Dot-notation access (e.g. `"battle.rewards.energy_cost"`).
    - Deep-merged YAML composition across multiple files.
    - `reload()` to pick up edited YAML at runtime.
    - Metrics and health snapshots.
    """

    _cache: Dict[str, Any] = {}
    _defaults: Dict[str, Any] = {}
    _config_dir: Optional[Path] = None

    _initialized: bool = False
    _init_lock: asyncio.Lock = asyncio.Lock()

    _metrics: ConfigMetrics = ConfigMetrics()

    # =========================================================================
    # YAML LOADING & DEFAULTS
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: MutableMapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)  # type: ignore[arg-type]
            else:
                target[key] = value

    @classmethod
    def _resolve_config_dir(cls) -> Path:
        return cls._config_dir or Config.CONFIG_DIR

    @classmethod
    def _load_yaml_configs(cls) -> Dict[str, Any]:
        """
        Load all YAML files from the config directory into a fresh dict.

        Unreadable files are logged and skipped; the rest still load.
        """
        merged: Dict[str, Any] = {}
        config_dir = cls._resolve_config_dir()

        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return merged

        yaml_files = sorted(list(config_dir.rglob("*.yaml")) + list(config_dir.rglob("*.yml")))
        loaded_count = 0

        for yaml_file in yaml_files:
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                cls._metrics.errors += 1
                logger.warning(
                    "Failed to load YAML config",
                    extra={
                        "file": str(yaml_file.relative_to(config_dir)),
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                continue

            if isinstance(data, dict):
                cls._deep_merge_dict(merged, data)
                loaded_count += 1
                logger.debug(
                    "Loaded YAML config",
                    extra={"file": str(yaml_file.relative_to(config_dir))},
                )
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={
                        "file": str(yaml_file.relative_to(config_dir)),
                        "root_type": type(data).__name__,
                    },
                )

        logger.info(
            "YAML configs loaded",
            extra={"yaml_file_count": loaded_count, "total_keys": len(merged)},
        )
        return merged

    # =========================================================================
    # INITIALIZATION / RELOAD
    # =========================================================================

    @classmethod
    async def initialize(cls, config_dir: Optional[Path] = None) -> None:
        """
        Load YAML configuration (idempotent).

        Raises
        ------
        ConfigInitializationError
            If loading fails unexpectedly.
        """
        if cls._initialized:
            return

        async with cls._init_lock:
            if cls._initialized:
                return

            if config_dir is not None:
                cls._config_dir = config_dir

            init_start = time.perf_counter()
            try:
                cls._defaults = cls._load_yaml_configs()
                cls._cache = dict(cls._defaults)
            except Exception as exc:
                cls._metrics.errors += 1
                logger.error(
                    "ConfigManager initialization failed",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise ConfigInitializationError("Failed to initialize ConfigManager") from exc

            cls._initialized = True
            logger.info(
                "ConfigManager initialization completed",
                extra={
                    "config_keys": len(cls._cache),
                    "latency_ms": round((time.perf_counter() - init_start) * 1000, 2),
                },
            )

    @classmethod
    async def reload(cls) -> None:
        """Re-read YAML from disk and swap the cache atomically."""
        async with cls._init_lock:
            fresh = cls._load_yaml_configs()
            cls._defaults = fresh
            cls._cache = dict(fresh)
            cls._initialized = True
            cls._metrics.reload_count += 1

        logger.info(
            "ConfigManager reloaded",
            extra={"config_keys": len(cls._cache), "reload_count": cls._metrics.reload_count},
        )

    @classmethod
    async def shutdown(cls) -> None:
        """Reset state. Safe to call multiple times."""
        cls._cache = {}
        cls._defaults = {}
        cls._initialized = False
        logger.info("ConfigManager shutdown complete")

    # =========================================================================
    # READ API
    # =========================================================================

    @classmethod
    def _get_from_defaults(cls, key: str) -> Any:
        """Traverse default config using dot notation; returns `None` if missing."""
        value: Any = cls._defaults
        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return None
            else:
                return None
        return value

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Examples
        --------
        >>> turn_ms = ConfigManager.get("rules.battle.turn_time_limit_ms", 15000)
        >>> timeout = ConfigManager.get("core.event.listener_timeout.high_seconds", 5.0)
        """
        start_time = time.perf_counter()
        cls._metrics.gets += 1

        if not cls._initialized:
            logger.warning(
                "ConfigManager accessed before explicit initialization; "
                "loading YAML synchronously"
            )
            cls._defaults = cls._load_yaml_configs()
            cls._cache = dict(cls._defaults)
            cls._initialized = True

        try:
            value: Any = cls._cache
            for part in key.split("."):
                if not isinstance(value, dict) or value.get(part) is None:
                    cls._metrics.cache_misses += 1
                    fallback = cls._get_from_defaults(key)
                    if fallback is not None:
                        cls._metrics.fallback_to_defaults += 1
                        return fallback
                    return default
                value = value[part]

            cls._metrics.cache_hits += 1
            return value
        finally:
            cls._metrics.total_get_time_ms += (time.perf_counter() - start_time) * 1000

    # =========================================================================
    # METRICS / HEALTH
    # =========================================================================

    @classmethod
    def health_snapshot(cls) -> Dict[str, Any]:
        """Summarized health view for diagnostics."""
        return {
            "initialized": cls._initialized,
            "config_keys": len(cls._cache),
            "config_dir": str(cls._resolve_config_dir()),
            "metrics": cls._metrics.snapshot(),
        }
