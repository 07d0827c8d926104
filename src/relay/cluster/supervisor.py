"""
Worker Supervisor: keeps the pool of worker processes alive.

Every worker exit, whatever the cause, is answered by launching exactly
one replacement. There is no backoff and no restart limit.
"""

import asyncio
import os
import signal
import sys
from typing import Awaitable, Callable, Optional, Protocol

import structlog

logger = structlog.get_logger()


class WorkerHandle(Protocol):
    """What the supervisor needs from a running worker."""

    pid: int

    async def wait(self) -> int: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


SpawnFn = Callable[[int], Awaitable[WorkerHandle]]


async def spawn_process(worker_id: int) -> WorkerHandle:
    """Start `python -m relay.worker_process` as a child process."""
    env = dict(os.environ, RELAY_WORKER_ID=str(worker_id))
    return await asyncio.create_subprocess_exec(
        sys.executable, "-m", "relay.worker_process",
        env=env,
    )


class WorkerSupervisor:
    """
    Owns the worker pool.

    Features:
    - Launches `pool_size` workers at start
    - Relaunches one worker per exit, forever
    - Stops relaunching and terminates children on SIGTERM/SIGINT
    """

    def __init__(
        self,
        spawn: SpawnFn = spawn_process,
        pool_size: int = 1,
        shutdown_timeout: float = 10.0,
        spawn_retry_delay: float = 1.0,
    ):
        self._spawn = spawn
        self.pool_size = pool_size
        self.shutdown_timeout = shutdown_timeout
        self.spawn_retry_delay = spawn_retry_delay

        self._workers: dict[int, WorkerHandle] = {}
        self._watchers: set[asyncio.Task] = set()
        self._launching: set[asyncio.Task] = set()
        self._next_worker_id = 0
        self.restarts = 0

        self._running = False
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def live_workers(self) -> int:
        return len(self._workers)

    async def run(self) -> None:
        """Main run loop. Returns only after a shutdown signal."""
        self._shutdown_event = asyncio.Event()
        self._setup_signal_handlers()

        try:
            await self.start()
            await self._shutdown_event.wait()
        finally:
            await self.shutdown()

    async def start(self) -> None:
        """Launch the initial workers."""
        self._running = True
        for _ in range(self.pool_size):
            await self._spawn_until_running()

    def stop(self) -> None:
        """Stop relaunching workers."""
        self._running = False
        if self._shutdown_event:
            self._shutdown_event.set()

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for shutdown."""
        try:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, self._signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(signal.SIGINT, lambda s, f: self._signal_handler())
            signal.signal(signal.SIGTERM, lambda s, f: self._signal_handler())

    def _signal_handler(self) -> None:
        logger.info("Shutdown signal received")
        self.stop()

    async def shutdown(self) -> None:
        """Terminate all workers."""
        self._running = False

        # A spawn in flight registers its handle before finishing
        if self._launching:
            await asyncio.gather(*self._launching, return_exceptions=True)

        handles = list(self._workers.values())

        for handle in handles:
            try:
                handle.terminate()
            except ProcessLookupError:
                pass

        if handles:
            try:
                await asyncio.wait_for(
                    asyncio.gather(*(h.wait() for h in handles), return_exceptions=True),
                    timeout=self.shutdown_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("Workers didn't stop in time, killing")
                for handle in handles:
                    try:
                        handle.kill()
                    except ProcessLookupError:
                        pass

        for task in list(self._watchers):
            task.cancel()

        logger.info("Supervisor stopped", restarts=self.restarts)

    async def _launch(self, worker_id: int) -> WorkerHandle:
        handle = await self._spawn(worker_id)
        self._workers[worker_id] = handle
        return handle

    async def _spawn_worker(self) -> None:
        self._next_worker_id += 1
        worker_id = self._next_worker_id

        launch = asyncio.create_task(self._launch(worker_id))
        self._launching.add(launch)
        launch.add_done_callback(self._launching.discard)

        # Shielded so cancelling the caller never loses a started process
        handle = await asyncio.shield(launch)

        logger.info("Spawned worker", worker_id=worker_id, pid=handle.pid)

        if not self._running:
            # shutdown() already waited for this launch and will terminate it
            return

        task = asyncio.create_task(self._watch(worker_id, handle))
        self._watchers.add(task)
        task.add_done_callback(self._watchers.discard)

    async def _spawn_until_running(self) -> bool:
        """Spawn one worker, retrying failed spawns. False if stopped first."""
        while self._running:
            try:
                await self._spawn_worker()
                return True
            except Exception as e:
                logger.error("Failed to spawn worker", error=str(e))
                await asyncio.sleep(self.spawn_retry_delay)
        return False

    async def _watch(self, worker_id: int, handle: WorkerHandle) -> None:
        """Wait for one worker to exit and replace it."""
        exit_code = await handle.wait()

        if not self._running:
            self._workers.pop(worker_id, None)
            return

        logger.error("Worker died", worker_id=worker_id, pid=handle.pid, exit_code=exit_code)

        # The dead handle stays registered until its replacement is, so the
        # pool is never empty
        if await self._spawn_until_running():
            self.restarts += 1

        self._workers.pop(worker_id, None)
