"""
Dispatcher: maps one queued request to one daemon call and one terminal
queue action.
"""

from enum import Enum
from typing import Any

import structlog

from .models import (
    BlockSubmission,
    BlockTemplateRequest,
    RandomOutputsRequest,
    RawTransactionRequest,
    Request,
    classify,
    is_ok,
)
from .rabbit import QueueClient
from .rpc import DaemonClient

logger = structlog.get_logger()


class Disposition(Enum):
    ACK = "ack"
    NACK = "nack"


# request type -> (success event, failure event, identifier log key)
EVENTS = {
    RawTransactionRequest: ("Relayed transaction", "Failed to relay transaction", "tx_hash"),
    BlockSubmission: ("Submitted block", "Failed to submit block", "block_blob"),
    BlockTemplateRequest: ("Received block template", "Failed to retrieve block template", "wallet_address"),
    RandomOutputsRequest: ("Received random outputs", "Failed to retrieve random outputs", "amounts"),
}


class Dispatcher:
    """
    Handles messages delivered to a worker.

    Every message ends with exactly one terminal action:
    - daemon answered (any status): reply, then ack
    - daemon call or reply failed: nack, the broker redelivers
    - payload matches no request shape: nack, no daemon call

    Each message produces exactly one log line.
    """

    def __init__(self, daemon: DaemonClient, queue: QueueClient, worker_id: str = "1"):
        self.daemon = daemon
        self.queue = queue
        self.worker_id = worker_id

    async def handle(self, message: Any, payload: Any) -> Disposition:
        request = classify(payload)

        if request is None:
            logger.warning(
                "Unrecognized request, rejecting",
                worker_id=self.worker_id,
                fields=sorted(payload) if isinstance(payload, dict) else type(payload).__name__,
            )
            await self.queue.nack(message)
            return Disposition.NACK

        ok_event, failed_event, key = EVENTS[type(request)]
        context = {
            "worker_id": self.worker_id,
            "daemon": self.daemon.address,
            key: request.identifier,
        }

        try:
            result = await self._call(request)
        except Exception as e:
            logger.error(failed_event, error=str(e) or type(e).__name__, **context)
            await self.queue.nack(message)
            return Disposition.NACK

        try:
            await self.queue.reply(message, result)
        except Exception as e:
            logger.error(failed_event, stage="reply", error=str(e) or type(e).__name__, **context)
            await self.queue.nack(message)
            return Disposition.NACK

        if is_ok(result):
            logger.info(ok_event, status=result.get("status"), **context)
        else:
            logger.warning(
                ok_event,
                status=result.get("status"),
                error=result.get("error") or "",
                **context,
            )

        await self.queue.ack(message)
        return Disposition.ACK

    async def _call(self, request: Request) -> dict:
        """Invoke the daemon operation matching the request shape."""
        if isinstance(request, RawTransactionRequest):
            return await self.daemon.send_raw_transaction(request.raw_transaction)

        if isinstance(request, BlockSubmission):
            return await self.daemon.submit_block(request.block_blob)

        if isinstance(request, BlockTemplateRequest):
            return await self.daemon.block_template(request.wallet_address, request.reserve_size)

        query = request.random_outputs
        return await self.daemon.random_outputs(query.amounts, query.mixin)
