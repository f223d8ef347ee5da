# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Custom exceptions for the pyzbx SDK.

All exceptions inherit from ZabbixError, making it easy to catch all
protocol-related errors with a single except clause:

    try:
        sender.send_value("host", "key", "42")
    except ZabbixError as e:
        print(f"Zabbix error: {e}")

For more granular error handling, catch specific exception types:

    try:
        sender.send(items)
    except AllNodesUnreachableError as e:
        print(f"Nobody answered: {e.nodes}")
    except ServerRejectedError as e:
        print(f"Server said no: {e.response}")
"""

from __future__ import annotations

from typing import Any


class ZabbixError(Exception):
    """
    Base exception for all pyzbx errors.

    All pyzbx exceptions inherit from this class, allowing you to catch
    all protocol-related errors with a single except clause.
    """

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        self.hint = hint
        if hint:
            message = f"{message}\n\n  Hint: {hint}"
        super().__init__(message)


class ConfigError(ZabbixError):
    """
    Raised for invalid addressing or configuration input.

    Configuration errors are never retried.
    """


class EmptyBatchError(ConfigError):
    """Raised when send() is called without any items."""

    def __init__(self) -> None:
        super().__init__(
            "Received an empty item list",
            hint="Pass at least one ItemValue to send()",
        )


class EncodingError(ZabbixError):
    """Raised when a payload cannot be serialized into a packet."""


class TransportError(ZabbixError):
    """Base exception for socket-level failures."""

    def __init__(
        self,
        message: str,
        host: str | None = None,
        port: int | None = None,
        *,
        hint: str | None = None,
    ) -> None:
        self.host = host
        self.port = port
        super().__init__(message, hint=hint)


class ConnectError(TransportError):
    """
    Raised when a connection to a node cannot be established.

    The reason attribute tells apart the common causes:
    - "refused": nothing listens on the address
    - "dns": the host name could not be resolved
    - "timeout": the connect step exceeded its deadline
    - "handshake": the socket wrapper (TLS/PSK) failed
    - "error": any other OS-level failure
    """

    def __init__(
        self,
        message: str,
        host: str | None = None,
        port: int | None = None,
        *,
        reason: str = "error",
    ) -> None:
        self.reason = reason
        hint = None
        if host:
            hint = f"Check that a Zabbix component is listening on {host}:{port}"
        super().__init__(message, host, port, hint=hint)


class WriteError(TransportError):
    """Raised when a packet cannot be fully written to the socket."""


class ReadError(TransportError):
    """
    Raised when a response cannot be read.

    This typically happens when:
    - The peer closed the connection early
    - The read timed out
    """


class ProtocolError(ZabbixError):
    """Raised when a received packet is malformed."""


class UnsupportedFeatureError(ProtocolError):
    """Raised when a packet uses a protocol feature this module lacks."""


class ClusterError(ZabbixError):
    """Base exception for cluster-level failures."""


class AllNodesUnreachableError(ClusterError):
    """
    Raised when no node of a cluster accepts a connection.

    A single pass over the cluster's nodes is the whole retry budget.
    """

    def __init__(self, nodes: list[str]) -> None:
        self.nodes = nodes
        super().__init__(
            f"Couldn't connect to all of cluster nodes: {', '.join(nodes)}",
            hint="Check that at least one node of the cluster is running and accessible",
        )


class ServerRejectedError(ClusterError):
    """Raised when the server answers with anything but a success."""

    def __init__(self, response: Any, message: str | None = None) -> None:
        self.response = response
        super().__init__(message or f"Server rejected the request: {response}")


class ParseError(ZabbixError):
    """Raised when a server reply cannot be parsed."""
