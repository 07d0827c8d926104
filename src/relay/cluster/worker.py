"""
Worker: consumes relay requests from the broker until disconnected.
"""

from enum import Enum
from typing import Optional

import structlog

from ..dispatcher import Dispatcher
from ..rabbit import QueueClient
from ..rpc import DaemonClient

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_FAILURE = 1


class WorkerState(Enum):
    CONNECTING = "connecting"
    SUBSCRIBING = "subscribing"
    READY = "ready"
    TERMINATING = "terminating"


class Worker:
    """
    One relay worker, run inside its own process.

    Lifecycle:
    1. CONNECTING: open the broker session
    2. SUBSCRIBING: declare the durable work queue, consume with prefetch
    3. READY: hand every delivery to the dispatcher
    4. TERMINATING: broker went away, or 1-2 failed

    The worker never reconnects. `run()` returns a non-zero exit code and
    the supervisor starts a fresh worker.
    """

    def __init__(
        self,
        worker_id: str,
        queue: QueueClient,
        daemon: DaemonClient,
        queue_name: str,
        prefetch_count: int = 1,
    ):
        self.worker_id = worker_id
        self.queue = queue
        self.daemon = daemon
        self.queue_name = queue_name
        self.prefetch_count = prefetch_count

        self.dispatcher = Dispatcher(daemon=daemon, queue=queue, worker_id=worker_id)
        self.state: Optional[WorkerState] = None

    def _transition(self, state: WorkerState) -> None:
        logger.debug("Worker state", worker_id=self.worker_id, state=state.value)
        self.state = state

    async def run(self) -> int:
        """Run until the broker disconnects. Returns the process exit code."""
        try:
            self._transition(WorkerState.CONNECTING)
            await self.queue.connect()

            self._transition(WorkerState.SUBSCRIBING)
            await self.queue.create_queue(self.queue_name, durable=True)
            await self.queue.register_consumer(
                self.queue_name,
                self.dispatcher.handle,
                prefetch_count=self.prefetch_count,
            )
        except Exception as e:
            stage = self.state
            self._transition(WorkerState.TERMINATING)
            logger.error(
                "Worker failed to start",
                worker_id=self.worker_id,
                stage=stage.value,
                error=str(e) or type(e).__name__,
            )
            return EXIT_FAILURE

        self._transition(WorkerState.READY)
        logger.info(
            "Worker awaiting requests",
            worker_id=self.worker_id,
            queue=self.queue_name,
            daemon=self.daemon.address,
        )

        reason = await self.queue.wait_closed()

        self._transition(WorkerState.TERMINATING)
        logger.error(
            "Lost connection to broker",
            worker_id=self.worker_id,
            error=str(reason) if reason else "connection closed",
        )
        return EXIT_FAILURE
