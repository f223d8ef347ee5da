# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
pyzbx - Python Client SDK for the Zabbix trapper and agent protocols.

A client library for talking to Zabbix over its native TCP protocol with
support for:
- Sending item values to servers and proxies (zabbix_sender)
- Polling agents for item values (zabbix_get)
- HA clusters with automatic failover
- Proxy group redirects
- Chunked bulk sending with optional compression
- TLS/PSK through pluggable socket wrappers

Quick Start (Sender):
    >>> from pyzbx import Sender
    >>>
    >>> sender = Sender("127.0.0.1", 10051)
    >>> resp = sender.send_value("example_host", "example.key", "50", 1695713666)
    >>> print(resp.processed, resp.failed)
    1 0

Bulk Sending:
    >>> from pyzbx import ItemValue, Sender
    >>>
    >>> items = [
    ...     ItemValue("host1", "item.key1", 10),
    ...     ItemValue("host1", "item.key2", "test message"),
    ...     ItemValue("host2", "item.key1", -1, 1695713666, 100),
    ... ]
    >>> resp = Sender("127.0.0.1", chunk_size=2).send(items)
    >>> for node, chunks in resp.details.items():
    ...     print(node, [str(c) for c in chunks])

High Availability (Multiple Clusters):
    >>> from pyzbx import Sender, ThreadedDispatcher
    >>>
    >>> sender = Sender(
    ...     clusters=[
    ...         ["zabbix.cluster1.node1", "zabbix.cluster1.node2:10051"],
    ...         ["zabbix.cluster2.node1:10051", "zabbix.cluster2.node2"],
    ...     ],
    ...     dispatcher=ThreadedDispatcher(),
    ... )
    >>> # Each chunk goes to every cluster; nodes of a cluster fail over

Agent Query:
    >>> from pyzbx import Getter
    >>>
    >>> resp = Getter("127.0.0.1", 10050).get("system.uname")
    >>> print(resp.value)

Asyncio:
    >>> from pyzbx import AsyncSender
    >>>
    >>> sender = AsyncSender(clusters=[["zbx-1", "zbx-2"], ["proxy"]])
    >>> resp = await sender.send_value("host", "item.key", "42")
"""

import logging

from .aio import AsyncGetter, AsyncSender, AsyncSession
from .config import AgentConfig
from .exceptions import (
    AllNodesUnreachableError,
    ClusterError,
    ConfigError,
    ConnectError,
    EmptyBatchError,
    EncodingError,
    ParseError,
    ProtocolError,
    ReadError,
    ServerRejectedError,
    TransportError,
    UnsupportedFeatureError,
    WriteError,
    ZabbixError,
)
from .getter import Getter
from .models import GetterConfig, ItemValue, SenderConfig, TrapperReply
from .protocol import create_packet, decode_packet
from .sender import Dispatcher, Sender, SequentialDispatcher, ThreadedDispatcher
from .session import Session, SessionState
from .tls import TLSConfig
from .types import AgentResponse, Cluster, Node, TrapperResponse

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "1.0.0"

__all__ = [
    # Clients
    "Sender",
    "Getter",
    "AsyncSender",
    "AsyncGetter",
    "AsyncSession",
    "Session",
    "SessionState",
    # Dispatch strategies
    "Dispatcher",
    "SequentialDispatcher",
    "ThreadedDispatcher",
    # Configuration
    "AgentConfig",
    "GetterConfig",
    "SenderConfig",
    "TLSConfig",
    # Types
    "AgentResponse",
    "Cluster",
    "ItemValue",
    "Node",
    "TrapperReply",
    "TrapperResponse",
    # Protocol
    "create_packet",
    "decode_packet",
    # Exceptions
    "AllNodesUnreachableError",
    "ClusterError",
    "ConfigError",
    "ConnectError",
    "EmptyBatchError",
    "EncodingError",
    "ParseError",
    "ProtocolError",
    "ReadError",
    "ServerRejectedError",
    "TransportError",
    "UnsupportedFeatureError",
    "WriteError",
    "ZabbixError",
]
