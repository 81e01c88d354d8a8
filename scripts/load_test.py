"""Async load generator for `POST /notification`.

Each request targets one of `--users` recipients with a random mix of
channels, so the delivery topic sees realistic fan-out widths.
"""

import argparse
import asyncio
import random
import statistics
import time
from collections import Counter
from uuid import uuid4

import httpx


def random_channels(user: str) -> dict:
    channels = {"in_app": {"message": f"load test {uuid4()}"}}
    if random.random() < 0.5:
        channels["email"] = {"message": "load test", "subject": "load test", "receiver_email": f"{user}@example.com"}
    if random.random() < 0.2:
        channels["slack"] = {"message": "load test", "slack": f"@{user}"}
    return channels


async def send_one(client: httpx.AsyncClient, args, user: str) -> tuple[int, float, int]:
    """Return (status_code, latency_ms, channels fanned out)."""

    started = time.perf_counter()
    channels = random_channels(user)
    try:
        resp = await client.post(
            "/notification",
            json={"user_id": user, "channels": channels},
            headers={"x-api-key": args.api_key, "x-correlation-id": str(uuid4())},
        )
        status = resp.status_code
    except httpx.HTTPError:
        status = 599
    return status, (time.perf_counter() - started) * 1000, len(channels)


async def run(args) -> None:
    sem = asyncio.Semaphore(args.concurrency)

    async with httpx.AsyncClient(base_url=args.base_url, timeout=10.0) as client:
        async def worker(i: int):
            async with sem:
                return await send_one(client, args, f"user-{i % args.users}")

        results = await asyncio.gather(*(worker(i) for i in range(args.total)))

    codes = Counter(status for status, _, _ in results)
    latencies = [latency for _, latency, _ in results]
    cuts = statistics.quantiles(latencies, n=100) if len(latencies) > 1 else latencies * 99
    ok = sum(count for status, count in codes.items() if 200 <= status < 300)

    print(f"requests={args.total} ok={ok} error_rate={(args.total - ok) / args.total * 100:.2f}%")
    print(f"status_codes={dict(sorted(codes.items()))}")
    print(f"delivery_records={sum(width for _, _, width in results)}")
    print(f"p50_ms={cuts[49]:.2f} p95_ms={cuts[94]:.2f} p99_ms={cuts[98]:.2f} avg_ms={statistics.mean(latencies):.2f}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--total", type=int, default=1000)
    parser.add_argument("--concurrency", type=int, default=100)
    parser.add_argument("--users", type=int, default=500)
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--api-key", default="dev-secret")
    asyncio.run(run(parser.parse_args()))
