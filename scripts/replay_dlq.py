"""Replay one dead-lettered delivery record back to the delivery topic.

Replay republishes the original envelope with its original event_id and the
delivery partition key, so inbox dedupe and global ordering still apply.

    python scripts/replay_dlq.py --notification-id <id> --dry-run
"""

import argparse
import asyncio
import json
from uuid import uuid4

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer


def matches(entry: dict, event_id: str | None, notification_id: str | None) -> bool:
    if event_id and entry.get("event_id") != event_id:
        return False
    if notification_id and entry.get("aggregate_id") != notification_id:
        return False
    return True


def replay_target(entry: dict) -> tuple[str, dict] | None:
    """Return `(topic, failed_event)` for a replayable DLQ entry, else None.

    Undecodable messages are dead-lettered with only their raw text and
    cannot be replayed.
    """

    payload = entry.get("payload") or {}
    topic = payload.get("replay_topic")
    failed_event = payload.get("failed_event")
    if not topic or not isinstance(failed_event, dict):
        return None
    return topic, failed_event


async def find_entry(consumer: AIOKafkaConsumer, event_id, notification_id, timeout_seconds: int) -> dict | None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_seconds
    while loop.time() < deadline:
        batches = await consumer.getmany(timeout_ms=1000, max_records=200)
        for messages in batches.values():
            for msg in messages:
                try:
                    entry = json.loads(msg.value)
                except ValueError:
                    continue
                if isinstance(entry, dict) and matches(entry, event_id, notification_id):
                    return entry
    return None


async def replay_once(args: argparse.Namespace) -> int:
    if not args.event_id and not args.notification_id:
        raise SystemExit("Provide --event-id or --notification-id")

    consumer = AIOKafkaConsumer(
        args.dlq_topic,
        bootstrap_servers=args.bootstrap_servers,
        group_id=f"dlq-replay-{uuid4()}",
        auto_offset_reset="earliest",
        enable_auto_commit=False,
    )
    await consumer.start()
    try:
        entry = await find_entry(consumer, args.event_id, args.notification_id, args.timeout_seconds)
    finally:
        await consumer.stop()

    if entry is None:
        print("No matching DLQ entry found before timeout.")
        return 1
    target = replay_target(entry)
    if target is None:
        print(f"DLQ entry {entry.get('event_id')} is not replayable ({entry.get('payload', {}).get('reason')}).")
        return 2

    topic, failed_event = target
    print(f"Matched notification_id={entry.get('aggregate_id')} -> {topic}")
    if args.dry_run:
        print("Dry run; nothing published.")
        return 0

    producer = AIOKafkaProducer(bootstrap_servers=args.bootstrap_servers)
    await producer.start()
    try:
        await producer.send_and_wait(
            topic,
            json.dumps(failed_event).encode("utf-8"),
            key=args.partition_key.encode("utf-8"),
        )
    finally:
        await producer.stop()
    print(f"Replayed event_id={failed_event.get('event_id')}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Replay one DLQ entry back to the delivery topic.")
    parser.add_argument("--bootstrap-servers", default="localhost:9092")
    parser.add_argument("--dlq-topic", default="notifications.dlq")
    parser.add_argument("--partition-key", default="default-group")
    parser.add_argument("--event-id", default=None, help="DLQ envelope event_id")
    parser.add_argument("--notification-id", default=None, help="notification_id of the failed record")
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("--timeout-seconds", type=int, default=30)
    raise SystemExit(asyncio.run(replay_once(parser.parse_args())))


if __name__ == "__main__":
    main()
