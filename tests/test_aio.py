# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""Tests for the asyncio clients."""

import asyncio
import socket
import ssl
import threading
from collections.abc import Callable

import pytest

from fakes import FakeServer, ReceivedRequest, trapper_success
from pyzbx import (
    AllNodesUnreachableError,
    AsyncGetter,
    AsyncSender,
    AsyncSession,
    ConnectError,
    EmptyBatchError,
    ItemValue,
    Node,
    ReadError,
    ServerRejectedError,
    SessionState,
    TLSConfig,
)
from pyzbx.protocol import create_packet

ServerFactory = Callable[..., FakeServer]


def items(count: int) -> list[ItemValue]:
    return [ItemValue("host", f"key{i}", i, 1695713666) for i in range(count)]


def echo(request: ReceivedRequest) -> bytes:
    return create_packet(request.text)


class TestAsyncSession:
    """Tests for AsyncSession class."""

    @pytest.mark.asyncio
    async def test_roundtrip(self, server_factory: ServerFactory) -> None:
        """Test sending a packet and reading the reply."""
        server = server_factory(echo)
        async with await AsyncSession.open(Node("127.0.0.1", server.port)) as session:
            await session.send(create_packet("ping"))
            assert session.state == SessionState.AWAITING_HEADER
            assert await session.receive() == "ping"
            assert session.state == SessionState.CONNECTED
        assert session.state == SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_connect_refused(self, closed_port: int) -> None:
        """Test refused connection."""
        session = AsyncSession(Node("127.0.0.1", closed_port), timeout_ms=1000)
        with pytest.raises(ConnectError) as exc_info:
            await session.connect()
        assert exc_info.value.reason == "refused"
        assert session.state == SessionState.ERRORED

    @pytest.mark.asyncio
    async def test_peer_closes_without_reply(self, server_factory: ServerFactory) -> None:
        """Test premature close by the peer."""
        server = server_factory(lambda r: b"")
        session = await AsyncSession.open(Node("127.0.0.1", server.port))
        await session.send(create_packet("x"))
        with pytest.raises(ReadError, match="Incomplete header"):
            await session.receive()
        assert session.state == SessionState.ERRORED

    @pytest.mark.asyncio
    async def test_read_timeout(self, silent_server: socket.socket) -> None:
        """Test that a silent peer times out."""
        port = silent_server.getsockname()[1]
        async with await AsyncSession.open(Node("127.0.0.1", port), timeout_ms=200) as session:
            await session.send(create_packet("x"))
            with pytest.raises(ReadError, match="Timed out"):
                await session.receive()

    @pytest.mark.asyncio
    async def test_cancelled_receive_releases_transport(
        self, silent_server: socket.socket
    ) -> None:
        """Test that cancelling a pending read closes the session."""
        port = silent_server.getsockname()[1]
        session = await AsyncSession.open(Node("127.0.0.1", port), timeout_ms=5000)
        await session.send(create_packet("x"))

        task = asyncio.create_task(session.receive())
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert session.state == SessionState.ERRORED


class TestAsyncSender:
    """Tests for AsyncSender class."""

    @pytest.mark.asyncio
    async def test_send_value(self, trapper: FakeServer) -> None:
        """Test sending a single value."""
        sender = AsyncSender("127.0.0.1", trapper.port)
        resp = await sender.send_value("host", "item.key", "42", 1695713666)

        assert resp.processed == 1
        assert trapper.requests[0].json()["data"][0]["value"] == "42"

    @pytest.mark.asyncio
    async def test_chunking(self, trapper: FakeServer) -> None:
        """Test that chunks are sent in order."""
        sender = AsyncSender("127.0.0.1", trapper.port, chunk_size=2)
        resp = await sender.send(items(5))

        assert [len(r.json()["data"]) for r in trapper.requests] == [2, 2, 1]
        assert resp.total == 5
        assert [c.chunk for c in resp.details[trapper.address]] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_empty_batch(self, trapper: FakeServer) -> None:
        """Test that an empty batch is rejected."""
        with pytest.raises(EmptyBatchError):
            await AsyncSender("127.0.0.1", trapper.port).send([])

    @pytest.mark.asyncio
    async def test_failover(self, trapper: FakeServer, closed_port: int) -> None:
        """Test that the live node answers and is promoted."""
        sender = AsyncSender(clusters=[[f"127.0.0.1:{closed_port}", trapper.address]])
        resp = await sender.send(items(1))

        assert resp.processed == 1
        assert sender.clusters[0][0] == Node("127.0.0.1", trapper.port)

    @pytest.mark.asyncio
    async def test_all_nodes_unreachable(self, closed_ports: Callable[[int], list[int]]) -> None:
        """Test that a dead cluster names every node."""
        addresses = [f"127.0.0.1:{p}" for p in closed_ports(2)]
        sender = AsyncSender(clusters=[addresses], timeout_ms=1000)
        with pytest.raises(AllNodesUnreachableError) as exc_info:
            await sender.send(items(1))
        assert sorted(exc_info.value.nodes) == sorted(addresses)

    @pytest.mark.asyncio
    async def test_redirect(self, server_factory: ServerFactory, trapper: FakeServer) -> None:
        """Test that a redirect is followed."""
        proxy = server_factory(
            lambda r: create_packet(
                {"response": "failed", "redirect": {"address": trapper.address, "revision": 2}}
            )
        )
        sender = AsyncSender(clusters=[[proxy.address]])
        resp = await sender.send(items(1))

        assert resp.processed == 1
        assert sender.clusters[0][0] == Node("127.0.0.1", trapper.port)

    @pytest.mark.asyncio
    async def test_rejected(self, server_factory: ServerFactory) -> None:
        """Test that a failed reply raises."""
        server = server_factory(lambda r: create_packet({"response": "failed"}))
        with pytest.raises(ServerRejectedError):
            await AsyncSender("127.0.0.1", server.port).send(items(1))

    @pytest.mark.asyncio
    async def test_clusters_sent_concurrently(self, server_factory: ServerFactory) -> None:
        """Test that all clusters of a chunk are contacted at the same time."""
        barrier = threading.Barrier(2, timeout=5)

        def handler(request: ReceivedRequest) -> bytes:
            barrier.wait()
            return trapper_success(request)

        a = server_factory(handler)
        b = server_factory(handler)
        sender = AsyncSender(clusters=[[a.address], [b.address]])
        resp = await sender.send(items(2))

        assert resp.total == 4
        assert set(resp.details) == {a.address, b.address}

    @pytest.mark.asyncio
    async def test_failure_waits_for_all(self, trapper: FakeServer, closed_port: int) -> None:
        """Test that a failing cluster doesn't abandon the others."""
        sender = AsyncSender(clusters=[[f"127.0.0.1:{closed_port}"], [trapper.address]])
        with pytest.raises(AllNodesUnreachableError):
            await sender.send(items(1))
        assert len(trapper.requests) == 1

    def test_ssl_context_not_callable(self) -> None:
        """Test that ssl_context must be callable."""
        with pytest.raises(TypeError):
            AsyncSender("127.0.0.1", ssl_context=ssl.create_default_context())  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_ssl_context_wrong_type(self, trapper: FakeServer) -> None:
        """Test that the factory must return an SSLContext."""
        sender = AsyncSender("127.0.0.1", trapper.port, ssl_context=lambda tls: "tls")
        with pytest.raises(TypeError):
            await sender.send(items(1))

    def test_ssl_context_gets_tls_options(self) -> None:
        """Test that the factory is called with the TLS options."""
        seen: list[dict[str, str]] = []
        context = TLSConfig(insecure_skip_verify=True).context_factory()

        def factory(tls: dict[str, str]) -> ssl.SSLContext:
            seen.append(tls)
            return context(tls)

        sender = AsyncSender("127.0.0.1", ssl_context=factory, tls={"TLSConnect": "cert"})
        assert sender._create_ssl_context() is context()
        assert seen == [{"TLSConnect": "cert"}]


class TestAsyncGetter:
    """Tests for AsyncGetter class."""

    @pytest.mark.asyncio
    async def test_get_value(self, server_factory: ServerFactory) -> None:
        """Test reading a supported key."""
        server = server_factory(lambda r: create_packet("1"))
        resp = await AsyncGetter("127.0.0.1", server.port).get("agent.ping")

        assert resp.value == "1"
        assert server.requests[0].text == "agent.ping"

    @pytest.mark.asyncio
    async def test_get_unsupported(self, server_factory: ServerFactory) -> None:
        """Test reading an unsupported key."""
        server = server_factory(lambda r: create_packet("ZBX_NOTSUPPORTED\0bad key"))
        resp = await AsyncGetter("127.0.0.1", server.port).get("bad.key")
        assert resp.error == "bad key"
        assert resp.value is None

    @pytest.mark.asyncio
    async def test_agent_closes_connection(self, server_factory: ServerFactory) -> None:
        """Test an agent that drops unauthorized peers."""
        server = server_factory(lambda r: b"")
        with pytest.raises(ReadError):
            await AsyncGetter("127.0.0.1", server.port).get("agent.ping")

    @pytest.mark.asyncio
    async def test_agent_unreachable(self, closed_port: int) -> None:
        """Test a refused connection."""
        with pytest.raises(ConnectError):
            await AsyncGetter("127.0.0.1", closed_port).get("agent.ping")
