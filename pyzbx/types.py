# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""Type definitions for the pyzbx SDK."""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from .exceptions import ConfigError, ParseError
from .protocol import HEADER_SIZE, MAGIC, NOT_SUPPORTED, TRAPPER_PORT, parse_address

_STATUS_PATTERN = re.compile(
    r"processed:\s*(?P<processed>\d+);\s*"
    r"failed:\s*(?P<failed>\d+);\s*"
    r"total:\s*(?P<total>\d+);\s*"
    r"seconds spent:\s*(?P<time>\d+\.\d+)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Node:
    """A single server or proxy address."""

    address: str
    port: int

    @classmethod
    def parse(cls, address: str, default_port: int = TRAPPER_PORT) -> Node:
        """Build a node from a "host[:port]" string."""
        try:
            host, port = parse_address(address, default_port)
        except ValueError as e:
            raise ConfigError(f"Invalid node address: '{address}'") from e
        if not host:
            raise ConfigError(f"Invalid node address: '{address}'")
        return cls(address=host, port=port)

    def __str__(self) -> str:
        return f"{self.address}:{self.port}"


class Cluster:
    """
    Redundant nodes of one logical destination (an HA group).

    Nodes are tried in order. The last node that accepted a connection is
    moved to the front so later sends try it first.

    Example:
        >>> cluster = Cluster(["zabbix-1:10051", "zabbix-2"])
        >>> str(cluster)
        'zabbix-1:10051,zabbix-2:10051'
    """

    def __init__(
        self,
        addresses: Iterable[str | Node],
        default_port: int = TRAPPER_PORT,
    ) -> None:
        self._nodes: list[Node] = [
            a if isinstance(a, Node) else Node.parse(a, default_port) for a in addresses
        ]
        if not self._nodes:
            raise ConfigError(
                "Cluster must contain at least one node",
                hint="Pass a list of 'host[:port]' strings",
            )

    @property
    def nodes(self) -> list[Node]:
        """Snapshot of the nodes in their current order."""
        return list(self._nodes)

    def promote_to_front(self, index: int) -> None:
        """Swap the node at index with the first node."""
        if index:
            self._nodes[0], self._nodes[index] = self._nodes[index], self._nodes[0]

    def replace(self, index: int, node: Node) -> None:
        """Put node in the slot at index."""
        self._nodes[index] = node

    def __getitem__(self, index: int) -> Node:
        return self._nodes[index]

    def __iter__(self) -> Iterator[Node]:
        return iter(list(self._nodes))

    def __len__(self) -> int:
        return len(self._nodes)

    def __str__(self) -> str:
        return ",".join(str(node) for node in self._nodes)

    def __repr__(self) -> str:
        return f"Cluster([{', '.join(repr(str(n)) for n in self._nodes)}])"


class TrapperResponse:
    """
    Counters returned by a Zabbix server or proxy.

    One instance accumulates every reply of a send() call. The aggregate
    instance returned by Sender.send() also carries per-node details: a
    mapping from node address to the ordered per-chunk responses.

    Example:
        >>> resp = TrapperResponse()
        >>> resp.add({"response": "success",
        ...           "info": "processed: 1; failed: 0; total: 1; seconds spent: 0.000055"})
        >>> resp.processed
        1
    """

    def __init__(self, chunk: int = 1, *, aggregate: bool = False) -> None:
        self._processed = 0
        self._failed = 0
        self._total = 0
        self._time = 0.0
        self._chunk = chunk
        self._aggregate = aggregate
        self.raw: Any = None
        self.details: Any = {} if aggregate else None

    @staticmethod
    def parse(response: Any) -> dict[str, Any]:
        """
        Parse the status line of a trapper reply.

        Returns:
            Dict with processed, failed, total (int) and time_spent (float).

        Raises:
            ParseError: If the reply has no info field or it doesn't match.
        """
        info = response.get("info") if isinstance(response, Mapping) else None
        if not info:
            raise ParseError(f"Received unexpected response: {response}")

        match = _STATUS_PATTERN.search(str(info))
        if match is None:
            raise ParseError(f"Failed to parse response: {info}")

        return {
            "processed": int(match.group("processed")),
            "failed": int(match.group("failed")),
            "total": int(match.group("total")),
            "time_spent": float(match.group("time")),
        }

    def add(self, response: Any, chunk: int | None = None) -> None:
        """
        Add the counters of a reply to the running totals.

        Args:
            response: Decoded trapper reply.
            chunk: Chunk number the reply belongs to.
        """
        counters = self.parse(response)

        self._processed += counters["processed"]
        self._failed += counters["failed"]
        self._total += counters["total"]
        self._time += counters["time_spent"]

        if chunk is not None:
            self._chunk = chunk

        self.raw = response
        if not self._aggregate:
            self.details = response

    def record(self, node: str, response: TrapperResponse) -> None:
        """Append a per-chunk response to the details of node."""
        self.details.setdefault(node, []).append(response)

    @property
    def processed(self) -> int:
        """Number of values accepted."""
        return self._processed

    @property
    def failed(self) -> int:
        """Number of values rejected."""
        return self._failed

    @property
    def total(self) -> int:
        """Number of values the server saw."""
        return self._total

    @property
    def time_spent(self) -> float:
        """Seconds the server spent processing."""
        return self._time

    @property
    def time(self) -> float:
        """Alias for time_spent."""
        return self._time

    @property
    def chunk(self) -> int:
        """Chunk number of the last added reply."""
        return self._chunk

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self._processed,
            "failed": self._failed,
            "total": self._total,
            "time": round(self._time, 6),
            "chunk": self._chunk,
        }

    def __str__(self) -> str:
        return json.dumps(self.to_dict())

    def __repr__(self) -> str:
        return f"TrapperResponse({self.to_dict()})"


@dataclass(frozen=True)
class AgentResponse:
    """Reply of a Zabbix agent to a single key."""

    raw: str
    value: str | None = None
    error: str | None = None

    @classmethod
    def from_text(cls, text: str) -> AgentResponse:
        """Classify decoded agent output as a value or an error."""
        if text.startswith(MAGIC.decode("ascii")):
            return cls(raw=text, value=text[HEADER_SIZE:])
        if text.startswith(NOT_SUPPORTED):
            reason = text[len(NOT_SUPPORTED):]
            if reason.startswith("\0"):
                reason = reason[1:]
            return cls(raw=text, error=reason)
        return cls(raw=text, value=text)

    @property
    def ok(self) -> bool:
        """True when the agent returned a value."""
        return self.error is None

    def __str__(self) -> str:
        return self.raw
