"""
RabbitMQ consumer feeding the command dispatcher.

Acknowledgment modes (ACK_MODE):
    at_least_once: A delivery is acked only after the dispatcher returns.
        Retryable failures (conflict, persistence) are republished to the
        same queue with an incremented x-retry-count header until
        MAX_REDELIVERIES, then dropped with an error log. Everything else,
        including decode errors and not-found, is acked and logged.
    at_most_once: Deliveries are auto-acked by the broker before the
        handler runs. A failure loses the command; it is only logged.

Invariants:
    - At most CONSUMER_WORKERS messages are dispatched concurrently
    - A republished copy is sent before the incoming delivery is acked
    - In at_least_once mode every delivery ends acked or rejected
"""

import asyncio
import logging

import aio_pika
from aio_pika.abc import (
    AbstractChannel,
    AbstractIncomingMessage,
    AbstractQueue,
    AbstractRobustConnection,
)

from config import Settings
from messaging.dispatcher import CommandDispatcher, DispatchResult

logger = logging.getLogger(__name__)

RETRY_HEADER = "x-retry-count"


def _retry_count(headers: dict) -> int:
    """Read the retry counter; a value that is not an integer counts as 0."""
    value = headers.get(RETRY_HEADER, 0)
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid retry header", extra={"retry_header": repr(value)})
        return 0


class CommandConsumer:
    """Consumes command messages from one queue and dispatches them.

    Example:
        >>> consumer = CommandConsumer(dispatcher, settings)
        >>> await consumer.start()
        >>> ...
        >>> await consumer.stop()
    """

    def __init__(self, dispatcher: CommandDispatcher, settings: Settings) -> None:
        self.dispatcher = dispatcher
        self.settings = settings
        self.queue_name = settings.RABBITMQ_QUEUE
        self.at_most_once = settings.ACK_MODE == "at_most_once"
        self.max_redeliveries = settings.MAX_REDELIVERIES

        self.connection: AbstractRobustConnection | None = None
        self.channel: AbstractChannel | None = None
        self.queue: AbstractQueue | None = None
        self._consumer_tag: str | None = None
        self._semaphore = asyncio.Semaphore(max(1, settings.CONSUMER_WORKERS))
        self._processed_count = 0
        self._error_count = 0

    @property
    def stats(self) -> dict[str, int]:
        return {"processed": self._processed_count, "errors": self._error_count}

    async def start(self) -> None:
        """
        Connect, declare the queue and start consuming.

        The connection is robust: aio-pika reconnects and restores the
        consumer on its own after broker restarts.
        """
        self.connection = await aio_pika.connect_robust(self.settings.amqp_url)
        self.channel = await self.connection.channel()
        if not self.at_most_once:
            await self.channel.set_qos(prefetch_count=max(1, self.settings.CONSUMER_WORKERS))

        self.queue = await self.channel.declare_queue(
            self.queue_name,
            durable=self.settings.RABBITMQ_QUEUE_DURABLE,
        )
        self._consumer_tag = await self.queue.consume(self.on_message, no_ack=self.at_most_once)

        logger.info(
            "Waiting for messages",
            extra={
                "queue": self.queue_name,
                "ack_mode": self.settings.ACK_MODE,
                "workers": self.settings.CONSUMER_WORKERS,
            },
        )

    async def stop(self) -> None:
        """Stop consuming and close the broker connection."""
        if self.queue is not None and self._consumer_tag is not None:
            await self.queue.cancel(self._consumer_tag)
            self._consumer_tag = None
        if self.connection is not None:
            await self.connection.close()
            self.connection = None
            self.channel = None
            self.queue = None
        logger.info("Consumer stopped", extra=self.stats)

    async def on_message(self, message: AbstractIncomingMessage) -> None:
        async with self._semaphore:
            await self.handle_message(message)

    async def handle_message(self, message: AbstractIncomingMessage) -> DispatchResult | None:
        """
        Dispatch one delivery and settle it according to the ack mode.

        Returns:
            The dispatch result, or None if the dispatcher itself crashed
        """
        logger.debug("Received a message", extra={"body": message.body[:1024]})

        try:
            result = await self.dispatcher.dispatch(message.body)
        except Exception:
            self._error_count += 1
            logger.exception("Dispatcher crashed on message")
            if not self.at_most_once:
                await message.reject(requeue=False)
            return None

        if result.error is not None:
            self._error_count += 1
        else:
            self._processed_count += 1

        if self.at_most_once:
            return result

        try:
            if result.retryable:
                await self._retry_or_drop(message, result)
            else:
                await message.ack()
        except Exception:
            logger.exception("Failed to settle message")
            await message.reject(requeue=False)
        return result

    async def _retry_or_drop(self, message: AbstractIncomingMessage, result: DispatchResult) -> None:
        headers = dict(message.headers or {})
        retry_count = _retry_count(headers)

        if retry_count >= self.max_redeliveries:
            logger.error(
                "Dropping message after retries",
                extra={"retries": retry_count, "error": str(result.error)},
            )
            await message.ack()
            return

        headers[RETRY_HEADER] = retry_count + 1
        await self.channel.default_exchange.publish(
            aio_pika.Message(
                body=message.body,
                headers=headers,
                content_type=message.content_type,
                delivery_mode=message.delivery_mode,
            ),
            routing_key=self.queue_name,
        )
        await message.ack()
        logger.warning(
            "Requeued message for retry",
            extra={"retry": retry_count + 1, "error": str(result.error)},
        )
