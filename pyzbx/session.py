# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Socket session for the Zabbix protocol.

A Session owns one TCP connection: connect, write one packet, read one
packet, close. It never retries; failover belongs to the sender.

Usage:

    with Session.open(Node("127.0.0.1", 10051), timeout_ms=5000) as session:
        session.send(packet)
        text = session.receive()
    # Socket is closed when exiting the block, on success or failure
"""

from __future__ import annotations

import logging
import socket
from collections.abc import Callable
from enum import Enum
from typing import Any

from .exceptions import ConnectError, ReadError, WriteError, ZabbixError
from .protocol import HEADER_SIZE, Header, decode_packet
from .types import Node

logger = logging.getLogger(__name__)

SocketWrapper = Callable[[socket.socket], socket.socket]


class SessionState(str, Enum):
    """Lifecycle states of a Session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SENDING = "sending"
    AWAITING_HEADER = "awaiting_header"
    AWAITING_BODY = "awaiting_body"
    CLOSED = "closed"
    ERRORED = "errored"


class Session:
    """
    One connection to a Zabbix server, proxy or agent.

    Any failure moves the session to ERRORED and releases the socket.

    Example:
        >>> session = Session(Node("127.0.0.1", 10050), timeout_ms=3000)
        >>> session.connect()
        >>> session.send(create_packet("agent.ping"))
        >>> session.receive()
        '1'
        >>> session.close()
    """

    def __init__(
        self,
        node: Node,
        *,
        timeout_ms: int = 10000,
        source_ip: str | None = None,
        use_ipv6: bool = False,
        wrapper: SocketWrapper | None = None,
    ) -> None:
        """
        Initialize a session without connecting.

        Args:
            node: Address to connect to.
            timeout_ms: Deadline for the connect step and for each read.
            source_ip: Local address to bind before connecting.
            use_ipv6: Resolve the node as IPv6 instead of IPv4.
            wrapper: Called once with the connected socket; its return
                value (e.g. a TLS socket) replaces the raw socket.
        """
        self._node = node
        self._timeout = timeout_ms / 1000.0
        self._source_ip = source_ip
        self._family = socket.AF_INET6 if use_ipv6 else socket.AF_INET
        self._wrapper = wrapper
        self._sock: socket.socket | None = None
        self._state = SessionState.IDLE

    @classmethod
    def open(
        cls,
        node: Node,
        timeout_ms: int = 10000,
        source_ip: str | None = None,
        wrapper: SocketWrapper | None = None,
        *,
        use_ipv6: bool = False,
    ) -> Session:
        """Create a session and connect it."""
        session = cls(
            node,
            timeout_ms=timeout_ms,
            source_ip=source_ip,
            use_ipv6=use_ipv6,
            wrapper=wrapper,
        )
        session.connect()
        return session

    @property
    def node(self) -> Node:
        return self._node

    @property
    def state(self) -> SessionState:
        return self._state

    def connect(self) -> None:
        """
        Connect to the node, trying every resolved address.

        Raises:
            ConnectError: On refusal, resolution failure, timeout or a
                failing socket wrapper.
        """
        self._require(SessionState.IDLE)
        self._state = SessionState.CONNECTING
        host, port = self._node.address, self._node.port

        try:
            addrs = socket.getaddrinfo(host, port, self._family, socket.SOCK_STREAM)
        except socket.gaierror as e:
            self._fail()
            raise ConnectError(f"Failed to resolve {host}: {e}", host, port, reason="dns") from e

        last_error: ConnectError | None = None
        for family, socktype, proto, _canonname, sockaddr in addrs:
            sock = None
            try:
                sock = socket.socket(family, socktype, proto)
                sock.settimeout(self._timeout)
                if self._source_ip:
                    sock.bind((self._source_ip, 0))
                sock.connect(sockaddr)
                self._sock = sock
                break
            except socket.timeout as e:
                last_error = ConnectError(
                    f"Connection to {self._node} timed out", host, port, reason="timeout"
                )
                last_error.__cause__ = e
            except ConnectionRefusedError as e:
                last_error = ConnectError(
                    f"Connection to {self._node} was refused", host, port, reason="refused"
                )
                last_error.__cause__ = e
            except OSError as e:
                last_error = ConnectError(f"Failed to connect to {self._node}: {e}", host, port)
                last_error.__cause__ = e
            if sock:
                sock.close()

        if self._sock is None:
            self._fail()
            if last_error:
                raise last_error
            raise ConnectError(f"No addresses found for {self._node}", host, port, reason="dns")

        if self._wrapper is not None:
            try:
                self._sock = self._wrapper(self._sock)
            except OSError as e:
                self._fail()
                raise ConnectError(
                    f"Socket wrapper failed for {self._node}: {e}", host, port, reason="handshake"
                ) from e
            except BaseException:
                self._fail()
                raise

        self._state = SessionState.CONNECTED
        logger.debug("Connected to %s", self._node)

    def send(self, packet: bytes) -> None:
        """
        Write the whole packet.

        Raises:
            WriteError: If the connection breaks while writing.
        """
        self._require(SessionState.CONNECTED)
        self._state = SessionState.SENDING
        try:
            self._sock.sendall(packet)
        except OSError as e:
            self._fail()
            raise WriteError(
                f"Failed to send data to {self._node}: {e}", self._node.address, self._node.port
            ) from e
        self._state = SessionState.AWAITING_HEADER

    def receive(self) -> str:
        """
        Read one packet and return its decoded payload.

        Raises:
            ProtocolError: If the header is malformed.
            UnsupportedFeatureError: If the packet uses large packet mode.
            ReadError: On premature close or read timeout.
        """
        self._require(SessionState.AWAITING_HEADER)
        try:
            header_bytes = self._read_exactly(HEADER_SIZE, "header")
            logger.debug("Zabbix response header: %r", header_bytes)
            header = Header.from_bytes(header_bytes)

            self._state = SessionState.AWAITING_BODY
            body = self._read_exactly(header.length, "payload")
            text = decode_packet(header_bytes, body)
        except ZabbixError:
            self._fail()
            raise

        self._state = SessionState.CONNECTED
        return text

    def close(self) -> None:
        """Close the connection. Errors while closing are ignored."""
        if self._sock is not None:
            try:
                self._sock.close()
            except Exception:
                pass
            self._sock = None
        if self._state != SessionState.ERRORED:
            self._state = SessionState.CLOSED

    def _read_exactly(self, size: int, what: str) -> bytes:
        chunks: list[bytes] = []
        received = 0
        while received < size:
            try:
                chunk = self._sock.recv(min(size - received, 65536))
            except socket.timeout as e:
                raise ReadError(
                    f"Timed out reading {what} from {self._node}",
                    self._node.address,
                    self._node.port,
                ) from e
            except OSError as e:
                raise ReadError(
                    f"Failed to read {what} from {self._node}: {e}",
                    self._node.address,
                    self._node.port,
                ) from e
            if not chunk:
                raise ReadError(
                    f"Incomplete {what}: got {received} bytes, expected {size}",
                    self._node.address,
                    self._node.port,
                    hint="The peer closed the connection early",
                )
            chunks.append(chunk)
            received += len(chunk)
        return b"".join(chunks)

    def _require(self, state: SessionState) -> None:
        if self._state != state:
            raise RuntimeError(
                f"Session to {self._node} is {self._state.value}, expected {state.value}"
            )

    def _fail(self) -> None:
        self._state = SessionState.ERRORED
        if self._sock is not None:
            try:
                self._sock.close()
            except Exception:
                pass
            self._sock = None

    def __enter__(self) -> Session:
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()
