#!/usr/bin/env python3
"""
Single relay worker process. Normally started by the supervisor:

    RELAY_WORKER_ID=1 python -m relay.worker_process

Exits non-zero when the broker connection fails or is lost.
"""

import asyncio
import os
import sys

import structlog

from .cluster import Worker
from .config import load_settings
from .log import configure_logging
from .rabbit import QueueClient
from .rpc import DaemonClient

logger = structlog.get_logger()


async def main() -> int:
    settings = load_settings()
    worker_id = os.environ.get("RELAY_WORKER_ID", "1")

    queue = QueueClient(
        host=settings.rabbit_host,
        username=settings.rabbit_username,
        password=settings.rabbit_password,
    )

    async with DaemonClient(
        host=settings.daemon_host,
        port=settings.daemon_port,
        timeout=settings.daemon_timeout,
        max_retries=settings.daemon_retries,
    ) as daemon:
        worker = Worker(
            worker_id=worker_id,
            queue=queue,
            daemon=daemon,
            queue_name=settings.queue_name,
            prefetch_count=settings.prefetch_count,
        )
        try:
            return await worker.run()
        finally:
            await queue.close()


def run() -> None:
    configure_logging()
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
