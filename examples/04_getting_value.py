#!/usr/bin/env python3
"""
04_getting_value.py - Querying a Zabbix Agent

This example demonstrates:
- Polling an agent for one item key
- Telling values from unsupported keys
- Handling connection errors

Prerequisites:
    - Zabbix agent running on 127.0.0.1:10050 that allows this host
    - pyzbx installed

Run with:
    python 04_getting_value.py
"""

import sys

from pyzbx import ConnectError, Getter, ReadError


def main():
    print("pyzbx - Getter Example")
    print("=" * 50)

    agent = Getter(host="127.0.0.1", port=10050, timeout_ms=3000)

    for key in ("agent.ping", "system.uname", "no.such.key"):
        try:
            resp = agent.get(key)
        except ConnectError as e:
            print(f"✗ Agent unreachable ({e.reason}): {e}")
            sys.exit(1)
        except ReadError as e:
            print(f"✗ Agent closed the connection: {e}")
            sys.exit(1)

        if resp.ok:
            print(f"✓ {key} = {resp.value}")
        else:
            print(f"✗ {key}: {resp.error}")


if __name__ == "__main__":
    main()
