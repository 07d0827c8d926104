"""
Relay agent between a RabbitMQ work queue and a blockchain daemon.
"""

from .models import classify, is_ok
from .rpc import DaemonClient, RPCError
from .rabbit import QueueClient, QueueError
from .dispatcher import Dispatcher, Disposition
from .config import Settings, load_settings

__all__ = [
    "classify",
    "is_ok",
    "DaemonClient",
    "RPCError",
    "QueueClient",
    "QueueError",
    "Dispatcher",
    "Disposition",
    "Settings",
    "load_settings",
]
