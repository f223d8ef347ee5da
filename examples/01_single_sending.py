#!/usr/bin/env python3
"""
01_single_sending.py - Sending a Single Value

This example demonstrates:
- Creating a Sender for one Zabbix server
- Sending one value to a trapper item
- Reading the processed/failed counters

Prerequisites:
    - Zabbix server running on 127.0.0.1:10051
    - A host "host" with a trapper item "item.key"
    - pyzbx installed

Run with:
    python 01_single_sending.py
"""

import sys

from pyzbx import Sender, ZabbixError


def main():
    print("pyzbx - Single Value Example")
    print("=" * 50)

    sender = Sender(server="127.0.0.1", port=10051, timeout_ms=5000)

    try:
        resp = sender.send_value("host", "item.key", "value", 1695713666)
    except ZabbixError as e:
        print(f"✗ Sending failed: {e}")
        sys.exit(1)

    # Counters come from the server's status line
    if resp.failed == 0:
        print(f"✓ Value sent successfully in {resp.time:.6f}s")
    else:
        print(f"✗ Server rejected {resp.failed} of {resp.total} values")

    print(f"Response: {resp}")


if __name__ == "__main__":
    main()
