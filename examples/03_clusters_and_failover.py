#!/usr/bin/env python3
"""
03_clusters_and_failover.py - High Availability Sending

This example demonstrates:
- Sending to several Zabbix clusters at once
- Failover between the nodes of one cluster
- Concurrent fan-out with ThreadedDispatcher
- Reusing the clusters of a local agent configuration
- Handling cluster-level errors

Prerequisites:
    - Zabbix HA clusters reachable at the addresses below
    - pyzbx installed

Run with:
    python 03_clusters_and_failover.py
"""

import logging

from pyzbx import (
    AllNodesUnreachableError,
    ConfigError,
    Sender,
    ServerRejectedError,
    ThreadedDispatcher,
)

ZABBIX_CLUSTERS = [
    ["zabbix.cluster1.node1", "zabbix.cluster1.node2:10051"],
    ["zabbix.cluster2.node1:10051", "zabbix.cluster2.node2:20051", "zabbix.cluster2.node3"],
]


def send_to_clusters():
    """Fan-out to every cluster"""
    print("Sending to Clusters")
    print("-" * 50)

    sender = Sender(clusters=ZABBIX_CLUSTERS, dispatcher=ThreadedDispatcher())

    try:
        resp = sender.send_value("example_host", "example.key", 50, 1695713666)
    except AllNodesUnreachableError as e:
        print(f"✗ No node answered: {e.nodes}")
        return
    except ServerRejectedError as e:
        print(f"✗ Server rejected the data: {e.response}")
        return

    for node, chunks in resp.details.items():
        print(f"✓ {node}: {[str(c) for c in chunks]}")

    # The node that answered now leads its cluster
    for cluster in sender.clusters:
        print(f"Active node: {cluster[0]}")


def send_with_agent_config():
    """Reuse ServerActive of the local agent"""
    print("\nSending with Agent Configuration")
    print("-" * 50)

    try:
        sender = Sender(use_config=True, config_path="/etc/zabbix/zabbix_agentd.conf")
    except ConfigError as e:
        print(f"✗ {e}")
        return

    print(f"Clusters: {[str(c) for c in sender.clusters]}")


def main():
    logging.basicConfig(level=logging.DEBUG)
    print("pyzbx - Clusters Example")
    print("=" * 50)

    send_to_clusters()
    send_with_agent_config()


if __name__ == "__main__":
    main()
