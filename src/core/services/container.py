"""
Service Container
=================

Purpose
-------
Centralized dependency injection container for the battle services.
Builds every service once, wires their dependencies and owns their
shutdown.

Responsibilities
----------------
- Build the rules provider, repository, factory, completion pipeline and
  battle service with shared dependencies
- Start the audit consumer
- Drain background work (experience awards, notifications, LOW-priority
  listeners) on shutdown

Non-Responsibilities
--------------------
- Infrastructure initialization order (delegated to src.main)
- Transport wiring (the Socket.IO gateway is bound in src.main)

Architecture Notes
------------------
- Domain services follow the constructor pattern
  `(..., config_manager, event_bus, logger)`
- Properties raise RuntimeError before `initialize()`
"""

from __future__ import annotations

import random
import time
from typing import TYPE_CHECKING, Any, Dict, Optional

from src.core.cache.ttl_cache import TTLCache
from src.core.config.manager import ConfigManager
from src.core.logging.logger import get_logger
from src.modules.audit import AuditConsumer
from src.modules.battle.completion import BattleCompletionPipeline
from src.modules.battle.experience import ExperienceService
from src.modules.battle.factory import BattleFactory
from src.modules.battle.repository import BattleRepository
from src.modules.battle.rewards import RewardRoller
from src.modules.battle.service import BattleService
from src.modules.notification import NotificationService
from src.modules.rules import RulesService

if TYPE_CHECKING:
    from logging import Logger

    from src.core.event.bus import EventBus

logger = get_logger(__name__)


class ServiceContainer:
    """
    Dependency injection container for all battle services.

    Usage:
        container = ServiceContainer(ConfigManager, event_bus, logger)
        await container.initialize()
        result = await container.battle.submit_action(...)
    """

    def __init__(
        self,
        config_manager: type[ConfigManager] | ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._config_manager = config_manager
        self._event_bus = event_bus
        self._logger = logger
        self._rng = rng

        self._rules: Optional[RulesService] = None
        self._repository: Optional[BattleRepository] = None
        self._notification: Optional[NotificationService] = None
        self._experience: Optional[ExperienceService] = None
        self._completion: Optional[BattleCompletionPipeline] = None
        self._factory: Optional[BattleFactory] = None
        self._battle: Optional[BattleService] = None
        self._audit_consumer: Optional[AuditConsumer] = None

        self._initialized = False
        self._service_init_times: Dict[str, float] = {}
        self._init_start: Optional[float] = None
        self._init_end: Optional[float] = None

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def initialize(self) -> None:
        if self._initialized:
            self._logger.warning("ServiceContainer already initialized")
            return

        self._init_start = time.perf_counter()
        self._logger.info("Service container initialization starting...")

        try:
            ttl = float(self._config_manager.get("rules_cache.ttl_seconds", 60))
            self._rules = self._timed("rules", lambda: RulesService(cache=TTLCache(ttl, name="rules"), config_manager=self._config_manager))
            self._repository = self._timed("battle_repository", BattleRepository)
            self._notification = self._timed("notification", NotificationService)

            self._experience = self._create_service(
                "experience", ExperienceService, rules_service=self._rules
            )
            self._completion = self._create_service(
                "battle_completion",
                BattleCompletionPipeline,
                rules_service=self._rules,
                experience_service=self._experience,
                notification_service=self._notification,
                reward_roller=RewardRoller(self._rng),
            )
            self._factory = self._create_service(
                "battle_factory",
                BattleFactory,
                repository=self._repository,
                rules_service=self._rules,
            )
            self._battle = self._create_service(
                "battle",
                BattleService,
                repository=self._repository,
                factory=self._factory,
                completion=self._completion,
                rules_service=self._rules,
                rng=self._rng,
            )

            self._audit_consumer = AuditConsumer(self._event_bus)
            self._audit_consumer.start()

            self._initialized = True
            self._init_end = time.perf_counter()
            self._logger.info(
                "Service container initialized",
                extra={
                    "service_count": len(self._service_init_times),
                    "init_time_seconds": round(self._init_end - self._init_start, 3),
                },
            )
        except Exception as e:
            self._logger.critical(
                "Service container initialization failed - server cannot start",
                exc_info=True,
                extra={"error": str(e)},
            )
            raise

    def _timed(self, name: str, factory: Any) -> Any:
        start = time.perf_counter()
        instance = factory()
        self._service_init_times[name] = time.perf_counter() - start
        return instance

    def _create_service(self, name: str, cls: type, **dependencies: Any) -> Any:
        """Construct a domain service with the shared config/event/logger triple."""
        start = time.perf_counter()

        try:
            instance = cls(
                config_manager=self._config_manager,
                event_bus=self._event_bus,
                logger=get_logger(f"{cls.__module__}.{cls.__name__}"),
                **dependencies,
            )
        except Exception:
            self._logger.error(f"Failed to initialize {name}", exc_info=True)
            raise

        duration = time.perf_counter() - start
        self._service_init_times[name] = duration
        self._logger.debug(f"Initialized {name} in {duration:.3f}s")

        return instance

    async def shutdown(self) -> None:
        """Drain background work and release service resources."""
        if not self._initialized:
            return

        self._logger.info("Shutting down service container...")

        if self._completion is not None:
            await self._completion.drain()
        if self._notification is not None:
            await self._notification.close()
        await self._event_bus.drain()
        if self._audit_consumer is not None:
            self._audit_consumer.stop()

        self._initialized = False
        self._logger.info("Service container shut down")

    async def health_check(self) -> Dict[str, bool | float | int | None]:
        return {
            "initialized": self._initialized,
            "service_count": len(self._service_init_times),
            "total_init_time_seconds": (
                round(self._init_end - self._init_start, 3)
                if self._init_start and self._init_end
                else None
            ),
        }

    # ========================================================================
    # Accessors
    # ========================================================================

    def _require(self, service: Any, name: str) -> Any:
        if not self._initialized or service is None:
            raise RuntimeError(f"ServiceContainer not initialized; '{name}' unavailable. Call initialize() first.")
        return service

    @property
    def rules(self) -> RulesService:
        return self._require(self._rules, "rules")

    @property
    def battle_repository(self) -> BattleRepository:
        return self._require(self._repository, "battle_repository")

    @property
    def battle_factory(self) -> BattleFactory:
        return self._require(self._factory, "battle_factory")

    @property
    def battle_completion(self) -> BattleCompletionPipeline:
        return self._require(self._completion, "battle_completion")

    @property
    def battle(self) -> BattleService:
        return self._require(self._battle, "battle")

    @property
    def notification(self) -> NotificationService:
        return self._require(self._notification, "notification")

    @property
    def is_initialized(self) -> bool:
        return self._initialized
