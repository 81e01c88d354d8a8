"""Fan-out of delivery records onto the ordered delivery topic."""

import asyncio

from notifyhub.common.config import settings
from notifyhub.common.events import EventEnvelope
from notifyhub.common.logging import logger
from notifyhub.common.metrics import delivery_enqueue_total, fanout_latency_seconds
from notifyhub.services.dispatch.schemas import DeliveryRecord, DispatchResult


DELIVERY_EVENT_TYPE = "notification.requested"
UNKNOWN_CHANNEL = "unknown"


class FanoutDispatcher:
    """Enqueues every channel of a request concurrently and never short-circuits.

    A channel whose enqueue fails keeps its response entry: callers get a
    `notification_id` even when that record may never have been queued.
    """

    def __init__(
        self,
        bus,
        topic: str | None = None,
        partition_key: str | None = None,
        service_name: str = "dispatch",
    ) -> None:
        self.bus = bus
        self.topic = topic or settings.delivery_topic
        self.partition_key = partition_key or settings.delivery_partition_key
        self.service_name = service_name

    async def _enqueue(self, channel: str, record: DeliveryRecord | None, trace_id: str) -> DispatchResult:
        if record is None:
            logger.warning("unsupported channel dropped channel=%s", channel)
            # Label by a fixed value; the raw key is caller-controlled.
            delivery_enqueue_total.labels(service=self.service_name, channel=UNKNOWN_CHANNEL, outcome="dropped").inc()
            return DispatchResult(channel=channel, notification_id=None)

        event = EventEnvelope(
            event_type=DELIVERY_EVENT_TYPE,
            aggregate_id=record.notification_id,
            trace_id=trace_id,
            payload=record.to_payload(),
        )
        try:
            await self.bus.publish(self.topic, event, key=self.partition_key)
        except Exception as exc:
            logger.error(
                "delivery enqueue failed channel=%s notification_id=%s error=%s",
                channel,
                record.notification_id,
                exc,
            )
            delivery_enqueue_total.labels(service=self.service_name, channel=record.channel.value, outcome="failed").inc()
        else:
            logger.info(
                "delivery enqueued channel=%s notification_id=%s event_id=%s",
                channel,
                record.notification_id,
                event.event_id,
            )
            delivery_enqueue_total.labels(service=self.service_name, channel=record.channel.value, outcome="enqueued").inc()
        return DispatchResult(channel=channel, notification_id=record.notification_id)

    async def dispatch(
        self, planned: list[tuple[str, DeliveryRecord | None]], trace_id: str = ""
    ) -> list[DispatchResult]:
        """Enqueue all records and return one result per entry, in input order."""

        with fanout_latency_seconds.labels(service=self.service_name).time():
            return list(
                await asyncio.gather(
                    *(self._enqueue(channel, record, trace_id) for channel, record in planned)
                )
            )
