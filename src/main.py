"""
Monster Arena - Application Entry Point
=======================================

Bootstrap
---------
- Config load + validation
- Logging
- Database initialization
- Redis initialization
- ConfigManager (YAML) initialization
- Event bus (global singleton)
- Service container
- Socket.IO server on an aiohttp app, with a /health route
- Graceful shutdown in reverse order
"""

import asyncio
import signal
import sys
from typing import Optional

import socketio
from aiohttp import web

from src.core.config.config import Config
from src.core.config.manager import ConfigManager
from src.core.database.service import DatabaseService
from src.core.event import event_bus
from src.core.infra.health import HealthStatus, UnifiedHealthCheck
from src.core.logging.logger import get_logger, setup_logging, shutdown_logging
from src.core.redis.service import RedisService
from src.core.services.container import ServiceContainer
from src.modules.battle.gateway import BattleGateway

logger = get_logger(__name__)


# ============================================================================
# Application Bootstrap
# ============================================================================


def _cors_origins() -> "str | list[str]":
    raw = Config.SOCKET_CORS_ORIGINS.strip()
    if raw == "*":
        return "*"
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


async def _health(request: web.Request) -> web.Response:
    report = await UnifiedHealthCheck.check()
    status = 503 if report["status"] == HealthStatus.UNHEALTHY.value else 200
    return web.json_response(report, status=status)


async def _startup() -> tuple[ServiceContainer, web.AppRunner]:
    """Initialize all infrastructure components before accepting sockets."""
    logger.info("========== MONSTER ARENA INITIALIZATION START ==========")

    # Step 1: Validate configuration early
    try:
        Config.validate()
        logger.info("✓ Configuration validated")
    except Exception as exc:
        logger.critical(f"Configuration validation failed: {exc}")
        raise

    # Step 2: Initialize database service
    try:
        await DatabaseService.initialize()
        logger.info("✓ Database service initialized")
    except Exception as exc:
        logger.critical(f"Database initialization failed: {exc}", exc_info=True)
        raise

    # Step 3: Initialize Redis
    try:
        await RedisService.initialize()
        logger.info("✓ Redis service initialized")
    except Exception as exc:
        logger.critical(f"Redis initialization failed: {exc}", exc_info=True)
        raise

    # Step 4: Initialize config manager
    try:
        await ConfigManager.initialize()
        logger.info("✓ Config manager initialized")
    except Exception as exc:
        logger.critical(f"Config manager initialization failed: {exc}", exc_info=True)
        raise

    # Step 5: Initialize service container
    try:
        container = ServiceContainer(
            config_manager=ConfigManager,
            event_bus=event_bus,
            logger=get_logger("src.core.services.container"),
        )
        await container.initialize()
        logger.info("✓ Service container initialized")
    except Exception as exc:
        logger.critical(f"Service container initialization failed: {exc}", exc_info=True)
        raise

    # Step 6: Socket.IO server
    try:
        sio = socketio.AsyncServer(
            async_mode="aiohttp",
            cors_allowed_origins=_cors_origins(),
            logger=False,
            engineio_logger=False,
        )
        app = web.Application()
        sio.attach(app)
        app.router.add_get("/health", _health)
        BattleGateway(sio, container.battle).register()

        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, Config.SOCKET_HOST, Config.SOCKET_PORT)
        await site.start()
        logger.info(
            "✓ Socket server listening",
            extra={"host": Config.SOCKET_HOST, "port": Config.SOCKET_PORT},
        )
    except Exception as exc:
        logger.critical(f"Socket server startup failed: {exc}", exc_info=True)
        await container.shutdown()
        raise

    logger.info("========== INFRASTRUCTURE INITIALIZED SUCCESSFULLY ==========")
    return container, runner


# ============================================================================
# Application Shutdown
# ============================================================================


async def _shutdown(container: Optional[ServiceContainer], runner: Optional[web.AppRunner]) -> None:
    """Gracefully shut down the socket server and infrastructure services."""
    logger.info("========== MONSTER ARENA SHUTDOWN START ==========")

    # Step 1: Stop accepting sockets
    if runner is not None:
        try:
            await runner.cleanup()
            logger.info("✓ Socket server stopped")
        except Exception as exc:
            logger.error(f"Error while stopping socket server: {exc}", exc_info=True)

    # Step 2: Shutdown service container (drains background tasks)
    if container is not None:
        try:
            await container.shutdown()
            logger.info("✓ Service container shut down")
        except Exception as exc:
            logger.error(f"Service container shutdown error: {exc}", exc_info=True)

    # Step 3: Shutdown config manager
    try:
        await ConfigManager.shutdown()
        logger.info("✓ Config manager shut down")
    except Exception as exc:
        logger.error(f"Config manager shutdown error: {exc}", exc_info=True)

    # Step 4: Shutdown Redis
    try:
        await RedisService.shutdown()
        logger.info("✓ Redis service shut down")
    except Exception as exc:
        logger.error(f"Redis service shutdown error: {exc}", exc_info=True)

    # Step 5: Shutdown database
    try:
        await DatabaseService.shutdown()
        logger.info("✓ Database service shut down")
    except Exception as exc:
        logger.error(f"Database service shutdown error: {exc}", exc_info=True)

    logger.info("========== SHUTDOWN COMPLETE ==========")
    shutdown_logging()


# ============================================================================
# Application Entrypoint
# ============================================================================


async def main() -> None:
    """
    Monster Arena entry point.

    Lifecycle:
        1. Validate configuration
        2. Initialize infrastructure (DB, Redis, ConfigManager, EventBus, Services)
        3. Serve Socket.IO until stopped
        4. Handle shutdown gracefully
    """
    setup_logging()

    container: Optional[ServiceContainer] = None
    runner: Optional[web.AppRunner] = None
    stop_event = asyncio.Event()
    _install_signal_handlers(asyncio.get_running_loop(), stop_event)

    try:
        container, runner = await _startup()
        await stop_event.wait()

    except asyncio.CancelledError:
        logger.warning("Asyncio task cancellation received; shutting down gracefully.")
        raise

    except Exception as exc:
        logger.critical(f"Fatal startup error: {exc}", exc_info=True)
        sys.exit(1)

    finally:
        await _shutdown(container, runner)


# ============================================================================
# Process Startup
# ============================================================================


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, stop_event: asyncio.Event) -> None:
    """Install SIGTERM/SIGINT handlers that trigger a graceful shutdown."""
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            logger.debug("Signal handlers not supported on this platform (likely Windows)")
            return


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Server manually stopped via keyboard interrupt.")


if __name__ == "__main__":
    run()
