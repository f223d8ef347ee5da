# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""Shared fixtures: loopback servers speaking the Zabbix protocol."""

from __future__ import annotations

import socket
from collections.abc import Callable, Iterator

import pytest

from fakes import FakeServer, Handler, trapper_success


@pytest.fixture
def server_factory() -> Iterator[Callable[..., FakeServer]]:
    """Create fake servers that are closed after the test."""
    servers: list[FakeServer] = []

    def factory(handler: Handler = trapper_success) -> FakeServer:
        server = FakeServer(handler)
        servers.append(server)
        return server

    yield factory

    for server in servers:
        server.close()


@pytest.fixture
def trapper(server_factory: Callable[..., FakeServer]) -> FakeServer:
    """A trapper that accepts every value."""
    return server_factory()


@pytest.fixture
def closed_ports() -> Callable[[int], list[int]]:
    """Loopback ports nothing listens on."""

    def allocate(count: int) -> list[int]:
        socks = []
        for _ in range(count):
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.bind(("127.0.0.1", 0))
            socks.append(sock)
        ports = [sock.getsockname()[1] for sock in socks]
        for sock in socks:
            sock.close()
        return ports

    return allocate


@pytest.fixture
def closed_port(closed_ports: Callable[[int], list[int]]) -> int:
    """A loopback port nothing listens on."""
    return closed_ports(1)[0]


@pytest.fixture
def silent_server() -> Iterator[socket.socket]:
    """A listening socket that accepts connections but never answers."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(4)
    yield sock
    sock.close()
