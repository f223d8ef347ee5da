# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""Loopback servers speaking the Zabbix protocol."""

from __future__ import annotations

import json
import socket
import struct
import threading
from collections.abc import Callable
from dataclasses import dataclass

from pyzbx.protocol import HEADER_SIZE, create_packet, decode_packet


@dataclass
class ReceivedRequest:
    """A request as seen by a fake server."""

    flags: int
    text: str

    def json(self) -> dict:
        return json.loads(self.text)


Handler = Callable[[ReceivedRequest], bytes]


def status_line(processed: int, failed: int = 0, seconds: float = 0.000123) -> str:
    return (
        f"processed: {processed}; failed: {failed}; "
        f"total: {processed + failed}; seconds spent: {seconds:.6f}"
    )


def trapper_success(request: ReceivedRequest) -> bytes:
    """Accept every value of a "sender data" request."""
    count = len(request.json()["data"])
    return create_packet({"response": "success", "info": status_line(count)})


class FakeServer:
    """
    Loopback TCP server answering each connection with one reply.

    The handler gets the decoded request and returns raw bytes to send
    back; an empty reply closes the connection without answering.
    """

    def __init__(self, handler: Handler) -> None:
        self.handler = handler
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(16)
        self._sock.settimeout(0.1)
        self._running = True
        self.requests: list[ReceivedRequest] = []
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    @property
    def port(self) -> int:
        return self._sock.getsockname()[1]

    @property
    def address(self) -> str:
        return f"127.0.0.1:{self.port}"

    def _serve(self) -> None:
        while self._running:
            try:
                conn, _ = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            with conn:
                conn.settimeout(5)
                try:
                    self._handle(conn)
                except OSError:
                    pass

    def _handle(self, conn: socket.socket) -> None:
        header = _recv_exactly(conn, HEADER_SIZE)
        if len(header) < HEADER_SIZE:
            return
        flags = header[4]
        length = struct.unpack("<I", header[5:9])[0]
        body = _recv_exactly(conn, length)
        request = ReceivedRequest(flags=flags, text=decode_packet(header, body))
        self.requests.append(request)

        reply = self.handler(request)
        if reply:
            conn.sendall(reply)

    def close(self) -> None:
        self._running = False
        self._thread.join(timeout=2)
        self._sock.close()


def _recv_exactly(conn: socket.socket, size: int) -> bytes:
    data = b""
    while len(data) < size:
        chunk = conn.recv(size - len(data))
        if not chunk:
            break
        data += chunk
    return data

