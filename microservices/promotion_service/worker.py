"""
Promotion Outbox Worker

Runs the notification outbox relay as a standalone process:

    python -m microservices.promotion_service.worker
"""

import asyncio
import signal

from core.config import get_settings
from core.logger import setup_service_logger

from .factory import PromotionServiceFactory

SERVICE_NAME = "promotion_service"

logger = setup_service_logger(f"{SERVICE_NAME}.worker")


async def run_worker(factory: PromotionServiceFactory, stop_event: asyncio.Event) -> None:
    """Run the relay until stop_event is set, then shut the factory down"""
    async with factory:
        await factory.relay.start()
        logger.info(f"{SERVICE_NAME} outbox worker running")
        await stop_event.wait()
        logger.info(f"{SERVICE_NAME} outbox worker shutting down")


async def main() -> None:
    settings = get_settings()
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    await run_worker(PromotionServiceFactory(settings), stop_event)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
