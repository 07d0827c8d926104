#!/usr/bin/env python3
"""
Relay agent master process.

Usage:
    python -m relay.relay_main

Configuration comes from config.json (or $RELAY_CONFIG) and the
environment, see relay.config.
"""

import asyncio

import structlog

from .cluster import WorkerSupervisor
from .config import load_settings
from .log import configure_logging

logger = structlog.get_logger()


async def main():
    settings = load_settings()

    if not settings.is_production:
        logger.warning(
            "Not running in production mode. "
            "Consider running in production mode: export RELAY_ENV=production"
        )

    logger.info(
        "Starting blockchain relay agent",
        daemon=f"{settings.daemon_host}:{settings.daemon_port}",
        queue=settings.queue_name,
        workers=settings.pool_size,
    )

    supervisor = WorkerSupervisor(pool_size=settings.pool_size)
    await supervisor.run()


def run() -> None:
    configure_logging()
    asyncio.run(main())


if __name__ == "__main__":
    run()
