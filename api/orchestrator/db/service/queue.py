"""
RabbitMQ job queue wrapper:
- Durable main queue (no TTL: a backlog waits for a free worker)
- DLX/DLQ for permanently failed jobs
- Delay queues (TTL -> dead-letter -> main queue) for retries/backoff
- receive(): single-message poll (basic.get) with manual ack
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import aio_pika
from aio_pika import DeliveryMode, ExchangeType, Message
from aio_pika.abc import AbstractChannel, AbstractIncomingMessage, AbstractQueue, AbstractRobustConnection

from shared.config import Settings, get_settings
from api.orchestrator.models.dto import JobQueueMessage
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class MessageQueue:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.s = settings or get_settings()

        self._conn: Optional[AbstractRobustConnection] = None  # network connection
        self._ch: Optional[AbstractChannel] = None  # logical session
        self._main: Optional[AbstractQueue] = None  # main job queue

    @property
    def queue_name(self) -> str:
        return self.s.job_queue_name

    async def connect(self) -> None:
        """Connect and declare queues/exchanges once."""
        if self._conn and not self._conn.is_closed and self._ch and self._main:
            return

        logger.info("Connecting to RabbitMQ", url=str(self.s.rabbitmq_url))

        # auto-reconnecting connection; unacked deliveries are redelivered by the
        # broker if it drops
        self._conn = await aio_pika.connect_robust(str(self.s.rabbitmq_url))
        # unroutable publishes (e.g. a missing delay queue) raise instead of
        # being dropped, so the caller can requeue the delivery
        self._ch = await self._conn.channel(on_return_raises=True)

        # Caps unacked messages pushed to this channel; the worker additionally
        # gates polling on its own concurrency limit.
        await self._ch.set_qos(prefetch_count=self.s.max_concurrent_jobs)

        await self._declare_main_and_dlq()

        logger.info("RabbitMQ ready", queue=self.queue_name)

    async def disconnect(self) -> None:
        if self._conn and not self._conn.is_closed:
            await self._conn.close()

        self._conn = None
        self._ch = None
        self._main = None

    async def _declare_main_and_dlq(self) -> None:
        """
        Main queue + DLX/DLQ.

        A message rejected with requeue=False is routed through the DLX into
        the DLQ, where it stays for inspection/replay. The main queue has no
        message TTL; the broker never dead-letters a job the worker has not
        given up on.
        """
        assert self._ch is not None

        q = self.queue_name
        dlx_name = f"{q}.dlx"
        dlq_name = f"{q}.dlq"

        dlx = await self._ch.declare_exchange(dlx_name, ExchangeType.DIRECT, durable=True)
        dlq = await self._ch.declare_queue(dlq_name, durable=True)
        await dlq.bind(dlx, routing_key=q)

        self._main = await self._ch.declare_queue(
            q,
            durable=True,
            arguments={
                "x-dead-letter-exchange": dlx_name,
                "x-dead-letter-routing-key": q,
            },
        )

    async def _publish(self, routing_key: str, payload: JobQueueMessage) -> None:
        await self.connect()
        assert self._ch is not None

        msg = Message(
            body=payload.to_bytes(),
            delivery_mode=DeliveryMode.PERSISTENT,
            content_type="application/json",
            message_id=f"{payload.job_id}:{payload.attempt}",
        )

        # default exchange: routing_key == queue name
        await self._ch.default_exchange.publish(msg, routing_key=routing_key)

    async def publish_job(self, message: JobQueueMessage) -> None:
        """Send a job descriptor straight to the main queue."""
        await self._publish(self.queue_name, message)
        logger.info("Job enqueued", job_id=str(message.job_id), attempt=message.attempt)

    async def publish_job_delayed(self, message: JobQueueMessage, delay_seconds: float) -> None:
        """
        Send a job descriptor to a delay queue.
        When its TTL expires it is dead-lettered back into the main queue.
        """
        await self.connect()

        delay_ms = max(0, int(delay_seconds * 1000))
        delay_queue = await self._get_delay_queue(delay_ms)

        await self._publish(delay_queue.name, message)

    async def _get_delay_queue(self, delay_ms: int) -> AbstractQueue:
        """
        Declare the delay queue for this delay_ms.

        Declared on every publish: publishing does not renew the x-expires
        lease, a redeclare does.
        """
        assert self._ch is not None

        main = self.queue_name
        name = f"{main}.delay.{delay_ms}"

        q = await self._ch.declare_queue(
            name,
            durable=True,
            arguments={
                "x-message-ttl": delay_ms,
                "x-dead-letter-exchange": "",         # default exchange
                "x-dead-letter-routing-key": main,    # after TTL -> main queue
                "x-expires": delay_ms + 60_000,       # drop the idle delay queue later
            },
        )
        return q

    async def receive(self) -> Optional[AbstractIncomingMessage]:
        """
        Fetch at most one message, or None if the queue is empty.
        The caller must ack(), reject() or nack() the returned delivery.
        """
        await self.connect()
        assert self._main is not None
        return await self._main.get(no_ack=False, fail=False)


@asynccontextmanager
async def get_message_queue(settings: Optional[Settings] = None) -> AsyncGenerator[MessageQueue, None]:
    mq = MessageQueue(settings)
    try:
        await mq.connect()
        yield mq
    finally:
        await mq.disconnect()


# Shared instance for the API process
_mq: Optional[MessageQueue] = None


async def get_mq() -> MessageQueue:
    global _mq
    if _mq is None:
        _mq = MessageQueue()
        await _mq.connect()
    return _mq


async def close_mq() -> None:
    global _mq
    if _mq:
        await _mq.disconnect()
        _mq = None
