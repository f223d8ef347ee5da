#!/usr/bin/env python3
"""
02_bulk_sending.py - Bulk Sending in Chunks

This example demonstrates:
- Building a batch of ItemValue objects
- Chunked sending with chunk_size
- Inspecting per-node, per-chunk responses

Prerequisites:
    - Zabbix server running on 127.0.0.1:10051
    - Hosts "host1" and "host2" with trapper items "item.key1", "item.key2"
    - pyzbx installed

Run with:
    python 02_bulk_sending.py
"""

from pyzbx import ItemValue, Sender


def main():
    print("pyzbx - Bulk Sending Example")
    print("=" * 50)

    items = [
        ItemValue("host1", "item.key1", 10),
        ItemValue("host1", "item.key2", "test message"),
        ItemValue("host2", "item.key1", -1, 1695713666),
        ItemValue("host3", "item.key1", '{"msg":"test message"}'),
        ItemValue("host2", "item.key1", 0, 1695713666, 100),
    ]

    # Two values per packet: three packets for five values
    sender = Sender("127.0.0.1", 10051, chunk_size=2, compression=True)
    resp = sender.send(items)

    print(f"Total: {resp.total}, processed: {resp.processed}, failed: {resp.failed}")

    print("\n=== Per-Chunk Details ===")
    for node, chunks in resp.details.items():
        for chunk in chunks:
            print(f"{node} chunk {chunk.chunk}: {chunk}")


if __name__ == "__main__":
    main()
