"""
Background timers
Settlement poller tick and dispatcher re-trigger on a fixed interval
"""

import asyncio

import structlog

from clawtar.services.container import ServiceContainer

logger = structlog.get_logger()


async def run_settlement_poller(container: ServiceContainer, interval: float):
    """Poll stale quotes, then let the dispatcher pick up anything newly paid"""
    while True:
        try:
            await asyncio.sleep(interval)
            await container.poller.tick()
            await container.dispatcher.trigger()

        except asyncio.CancelledError:
            logger.info("settlement_poller_stopped")
            raise
        except Exception as e:
            logger.error("settlement_poller_error", error=str(e))


async def run_dispatcher(container: ServiceContainer, interval: float):
    """Re-trigger the dispatcher so paid tasks never depend on a notification"""
    while True:
        try:
            await asyncio.sleep(interval)
            await container.dispatcher.trigger()

        except asyncio.CancelledError:
            logger.info("dispatcher_loop_stopped")
            raise
        except Exception as e:
            logger.error("dispatcher_loop_error", error=str(e))
