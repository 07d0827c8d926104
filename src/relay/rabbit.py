"""
RabbitMQ client: one connection and one channel per worker.

Wraps aio-pika with the small surface the relay agent needs:
connect, declare a queue, consume with a prefetch limit, and the
per-message reply/ack/nack terminal actions.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import aio_pika
import structlog
from aio_pika.abc import (
    AbstractChannel,
    AbstractConnection,
    AbstractIncomingMessage,
    AbstractQueue,
)
from aio_pika.exceptions import AMQPError

from .models import decode, encode

logger = structlog.get_logger()

MessageHandler = Callable[[AbstractIncomingMessage, Any], Awaitable[Any]]


class QueueError(Exception):
    """Broker connection or subscription failed."""
    pass


class QueueClient:
    """
    Single-session RabbitMQ client.

    The client never reconnects: once the connection or channel closes,
    `wait_closed()` returns and the owner is expected to give up.
    """

    def __init__(
        self,
        host: str = "localhost",
        username: str = "",
        password: str = "",
        port: int = 5672,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password

        self._connection: Optional[AbstractConnection] = None
        self._channel: Optional[AbstractChannel] = None
        self._queues: dict[str, AbstractQueue] = {}
        self._closed: Optional[asyncio.Future] = None

    async def connect(self) -> None:
        """Open the connection and a channel."""
        self._closed = asyncio.get_running_loop().create_future()

        try:
            # Empty credentials mean the broker's default account
            self._connection = await aio_pika.connect(
                host=self.host,
                port=self.port,
                login=self.username or "guest",
                password=self.password or "guest",
            )
            self._connection.close_callbacks.add(self._on_close)

            self._channel = await self._connection.channel()
            self._channel.close_callbacks.add(self._on_close)
        except (AMQPError, OSError) as e:
            raise QueueError(f"Could not connect to {self.host}: {e}") from e

        logger.info("Connected to broker", host=self.host, port=self.port)

    async def create_queue(self, name: str, durable: bool = True) -> None:
        """Declare a work queue."""
        try:
            self._queues[name] = await self._require_channel().declare_queue(name, durable=durable)
        except AMQPError as e:
            raise QueueError(f"Could not declare queue {name}: {e}") from e

    async def register_consumer(
        self,
        name: str,
        handler: MessageHandler,
        prefetch_count: int = 1,
    ) -> None:
        """
        Consume from a declared queue.

        At most `prefetch_count` messages are delivered before one of them
        is acked, nacked or replied to. The handler receives the message and
        its JSON-decoded body (None if the body is not JSON).
        """
        channel = self._require_channel()

        async def on_message(message: AbstractIncomingMessage) -> None:
            await handler(message, decode(message.body))

        try:
            await channel.set_qos(prefetch_count=prefetch_count)
            queue = self._queues.get(name) or await channel.get_queue(name)
            await queue.consume(on_message)
        except AMQPError as e:
            raise QueueError(f"Could not consume from {name}: {e}") from e

        logger.debug("Registered consumer", queue=name, prefetch_count=prefetch_count)

    async def reply(self, message: AbstractIncomingMessage, payload: Any) -> None:
        """Publish a response to the requester's reply queue."""
        if not message.reply_to:
            logger.debug("Message has no reply_to, not replying", message_id=message.message_id)
            return

        await self._require_channel().default_exchange.publish(
            aio_pika.Message(
                body=encode(payload),
                content_type="application/json",
                correlation_id=message.correlation_id,
            ),
            routing_key=message.reply_to,
        )

    async def ack(self, message: AbstractIncomingMessage) -> None:
        await message.ack()

    async def nack(self, message: AbstractIncomingMessage) -> None:
        """Return the message to the queue for redelivery."""
        await message.nack(requeue=True)

    async def wait_closed(self) -> Optional[BaseException]:
        """Block until the broker session ends. Returns the close reason."""
        if self._closed is None:
            raise QueueError("Not connected")
        return await self._closed

    async def close(self) -> None:
        if self._connection and not self._connection.is_closed:
            await self._connection.close()

    def _on_close(self, sender: Any, exc: Optional[BaseException] = None) -> None:
        if self._closed is not None and not self._closed.done():
            self._closed.set_result(exc)

    def _require_channel(self) -> AbstractChannel:
        if self._channel is None:
            raise QueueError("Not connected")
        return self._channel
