"""Event envelope plus the Kafka producer and consumer loop shared by services."""

import asyncio
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from pydantic import BaseModel, Field

from notifyhub.common.config import settings
from notifyhub.common.logging import log_context, logger
from notifyhub.common.metrics import event_queue_delay_seconds


class EventEnvelope(BaseModel):
    """Canonical event shape sent across Kafka topics."""

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    event_type: str
    aggregate_id: str
    occurred_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    trace_id: str = ""
    payload: dict[str, Any]

    def occurred_at_utc(self) -> datetime:
        """Parse `occurred_at` into an aware UTC datetime."""

        occurred_at = datetime.fromisoformat(self.occurred_at.replace("Z", "+00:00"))
        if occurred_at.tzinfo is None:
            occurred_at = occurred_at.replace(tzinfo=timezone.utc)
        return occurred_at.astimezone(timezone.utc)


class KafkaBus:
    """Lazy Kafka producer wrapper shared by one service process."""

    def __init__(self) -> None:
        self._producer: AIOKafkaProducer | None = None
        self._lock = asyncio.Lock()

    async def producer(self) -> AIOKafkaProducer:
        # Concurrent fan-out tasks may race to create the producer.
        async with self._lock:
            if self._producer is None:
                producer = AIOKafkaProducer(
                    bootstrap_servers=settings.kafka_bootstrap_servers,
                    acks="all",
                    enable_idempotence=True,
                )
                await producer.start()
                self._producer = producer
        return self._producer

    async def publish(self, topic: str, event: EventEnvelope, key: str | None = None) -> None:
        """Send one envelope and wait for the broker acknowledgement.

        Messages sharing a `key` land on the same partition, which preserves
        their relative order for consumers.
        """

        producer = await self.producer()
        await producer.send_and_wait(
            topic,
            event.model_dump_json().encode("utf-8"),
            key=key.encode("utf-8") if key is not None else None,
        )

    async def close(self) -> None:
        if self._producer:
            await self._producer.stop()
            self._producer = None


async def make_consumer(topic: str, group_id: str) -> AIOKafkaConsumer:
    """Create a configured Kafka consumer for one topic/group."""

    consumer = AIOKafkaConsumer(
        topic,
        bootstrap_servers=settings.kafka_bootstrap_servers,
        group_id=group_id,
        auto_offset_reset="earliest",
        enable_auto_commit=False,
    )
    await consumer.start()
    return consumer


def decode_envelope(raw: bytes) -> EventEnvelope:
    """Parse one Kafka message value into an envelope."""

    return EventEnvelope.model_validate_json(raw)


async def deliver_message(topic: str, group_id: str, raw: bytes, handler, on_undecodable=None) -> bool:
    """Decode one message and run `handler` on it; return False if it failed.

    Never raises: a poison message must not stall the partition behind it.
    """

    try:
        event = decode_envelope(raw)
    except ValueError as exc:
        logger.warning("undecodable message topic=%s group=%s error=%s", topic, group_id, exc)
        if on_undecodable is not None:
            try:
                await on_undecodable(raw, exc)
            except Exception as dlq_exc:
                logger.error("undecodable hook failed topic=%s error=%s", topic, dlq_exc)
        return False

    event_queue_delay_seconds.labels(service=settings.service_name, topic=topic).observe(
        max(0.0, (datetime.now(timezone.utc) - event.occurred_at_utc()).total_seconds())
    )
    with log_context(event.trace_id, event.event_id, event.aggregate_id):
        logger.info("event received topic=%s group=%s event_type=%s", topic, group_id, event.event_type)
        try:
            await handler(event)
        except Exception as exc:
            logger.error("handler failed topic=%s group=%s error=%s", topic, group_id, exc)
            return False
    return True


async def consume_forever(topic: str, group_id: str, handler, on_undecodable=None) -> None:
    """Consume `topic` as `group_id` until cancelled.

    Offsets are committed after each polled batch; a broken connection is
    rebuilt after a short pause.
    """

    while True:
        consumer = None
        try:
            consumer = await make_consumer(topic, group_id)
            while True:
                batches = await consumer.getmany(timeout_ms=500, max_records=50)
                for messages in batches.values():
                    for msg in messages:
                        await deliver_message(topic, group_id, msg.value, handler, on_undecodable)
                await consumer.commit()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("consumer loop error topic=%s group=%s error=%s", topic, group_id, exc)
            await asyncio.sleep(2)
        finally:
            if consumer is not None:
                await consumer.stop()
