#!/usr/bin/env python3
"""
06_async_clients.py - Asyncio Sender and Getter

This example demonstrates:
- Sending values with AsyncSender
- Concurrent fan-out of each chunk to several clusters
- Polling several agents at once with AsyncGetter

Prerequisites:
    - Zabbix server running on 127.0.0.1:10051
    - Zabbix agents at the addresses below
    - pyzbx installed

Run with:
    python 06_async_clients.py
"""

import asyncio

from pyzbx import AsyncGetter, AsyncSender, ItemValue, ZabbixError

AGENTS = ["127.0.0.1:10050", "127.0.0.2:10050"]


async def send_values():
    """Bulk sending with asyncio"""
    print("Async Sending")
    print("-" * 50)

    sender = AsyncSender(
        clusters=[["127.0.0.1:10051"], ["127.0.0.1:20051"]],
        chunk_size=2,
    )
    items = [ItemValue("host", "item.key", i) for i in range(5)]

    try:
        resp = await sender.send(items)
    except ZabbixError as e:
        print(f"✗ Sending failed: {e}")
        return

    print(f"✓ {resp}")


async def poll_agents():
    """Several agents at once"""
    print("\nAsync Polling")
    print("-" * 50)

    getters = [AsyncGetter(address) for address in AGENTS]
    results = await asyncio.gather(
        *(getter.get("agent.ping") for getter in getters),
        return_exceptions=True,
    )

    for getter, result in zip(getters, results):
        if isinstance(result, Exception):
            print(f"✗ {getter.node}: {result}")
        else:
            print(f"✓ {getter.node}: {result.value}")


async def main():
    print("pyzbx - Asyncio Example")
    print("=" * 50)

    await send_values()
    await poll_agents()


if __name__ == "__main__":
    asyncio.run(main())
