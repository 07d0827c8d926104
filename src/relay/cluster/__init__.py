"""
Process pool for the relay agent: supervisor and per-process worker.
"""

from .supervisor import WorkerSupervisor, WorkerHandle, spawn_process
from .worker import Worker, WorkerState

__all__ = [
    "WorkerSupervisor",
    "WorkerHandle",
    "spawn_process",
    "Worker",
    "WorkerState",
]
