# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""Tests for the agent getter."""

import logging
import socket
from collections.abc import Callable

import pytest

from fakes import FakeServer, ReceivedRequest
from pyzbx import ConfigError, ConnectError, Getter, GetterConfig, Node, ReadError
from pyzbx.protocol import create_packet

ServerFactory = Callable[..., FakeServer]


def agent(values: dict[str, str]) -> Callable[[ReceivedRequest], bytes]:
    def handler(request: ReceivedRequest) -> bytes:
        if request.text in values:
            return create_packet(values[request.text])
        return create_packet("ZBX_NOTSUPPORTED\0Unsupported item key.")

    return handler


class TestGetter:
    """Tests for Getter class."""

    def test_get_value(self, server_factory: ServerFactory) -> None:
        """Test reading a supported key."""
        server = server_factory(agent({"agent.ping": "1"}))
        resp = Getter("127.0.0.1", server.port).get("agent.ping")

        assert resp.value == "1"
        assert resp.ok
        assert server.requests[0].text == "agent.ping"

    def test_get_unsupported(self, server_factory: ServerFactory) -> None:
        """Test reading an unsupported key."""
        server = server_factory(agent({}))
        resp = Getter("127.0.0.1", server.port).get("bad.key")

        assert resp.value is None
        assert resp.error == "Unsupported item key."
        assert not resp.ok

    def test_get_with_config(self, server_factory: ServerFactory) -> None:
        """Test construction from a config object."""
        server = server_factory(agent({"system.uname": "Linux"}))
        config = GetterConfig(port=server.port, timeout_ms=2000)
        assert str(Getter(config=config).get("system.uname")) == "Linux"

    def test_agent_closes_connection(
        self,
        server_factory: ServerFactory,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test an agent that drops unauthorized peers."""
        server = server_factory(lambda r: b"")
        with caplog.at_level(logging.WARNING, logger="pyzbx"):
            with pytest.raises(ReadError):
                Getter("127.0.0.1", server.port).get("agent.ping")
        assert "access restrictions" in caplog.text

    def test_agent_unreachable(self, closed_port: int) -> None:
        """Test a refused connection."""
        with pytest.raises(ConnectError) as exc_info:
            Getter("127.0.0.1", closed_port).get("agent.ping")
        assert exc_info.value.reason == "refused"

    def test_socket_wrapper(self, server_factory: ServerFactory) -> None:
        """Test that the wrapper is applied to the connection."""
        server = server_factory(agent({"agent.ping": "1"}))
        wrapped: list[socket.socket] = []

        def wrapper(sock: socket.socket) -> socket.socket:
            wrapped.append(sock)
            return sock

        Getter("127.0.0.1", server.port, socket_wrapper=wrapper).get("agent.ping")
        assert len(wrapped) == 1

    def test_invalid_options(self) -> None:
        """Test construction errors."""
        with pytest.raises(ConfigError):
            Getter("127.0.0.1", 0)
        with pytest.raises(ConfigError):
            Getter("127.0.0.1", chunk_size=10)
        with pytest.raises(TypeError):
            Getter("127.0.0.1", socket_wrapper=1)  # type: ignore[arg-type]

    def test_host_addressing(self) -> None:
        """Test bracketed IPv6 hosts and empty hosts."""
        assert Getter("[::1]").node == Node("::1", 10050)
        assert Getter("::1", 10055).node == Node("::1", 10055)
        with pytest.raises(ConfigError):
            Getter("")

    def test_defaults(self) -> None:
        """Test default agent address."""
        config = Getter().config
        assert config.host == "127.0.0.1"
        assert config.port == 10050
        assert config.timeout_ms == 10000
