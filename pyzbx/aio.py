# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Asyncio clients for the Zabbix trapper and agent protocols.

Same behaviour as Sender and Getter, on asyncio streams. Within one chunk
every cluster is sent to concurrently and the call waits for all of them.

Usage:

    import asyncio
    from pyzbx import AsyncGetter, AsyncSender, ItemValue

    async def main():
        sender = AsyncSender(clusters=[["zbx-1", "zbx-2"], ["proxy"]])
        resp = await sender.send([ItemValue("host", "key", 1)])
        print(resp)

        agent = AsyncGetter("127.0.0.1")
        print((await agent.get("agent.ping")).value)

    asyncio.run(main())

TLS is configured with a factory returning an ssl.SSLContext instead of a
socket wrapper: AsyncSender calls it with the TLS options of the agent
configuration, AsyncGetter calls it without arguments.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import ssl
from collections.abc import Callable, Iterable
from typing import Any

from .config import DEFAULT_CONFIG_PATH
from .exceptions import (
    AllNodesUnreachableError,
    ConnectError,
    ReadError,
    WriteError,
    ZabbixError,
)
from .getter import BaseGetter
from .models import GetterConfig, ItemValue, SenderConfig
from .protocol import HEADER_SIZE, Header, create_packet, decode_packet
from .sender import BaseSender
from .session import SessionState
from .types import AgentResponse, Cluster, Node, TrapperResponse

logger = logging.getLogger(__name__)

SenderContextFactory = Callable[[dict[str, str]], ssl.SSLContext]
GetterContextFactory = Callable[[], ssl.SSLContext]


class AsyncSession:
    """
    One asyncio connection to a Zabbix server, proxy or agent.

    Any failure, cancellation included, moves the session to ERRORED and
    releases the transport.

    Example:
        >>> async with await AsyncSession.open(Node("127.0.0.1", 10050)) as session:
        ...     await session.send(create_packet("agent.ping"))
        ...     print(await session.receive())
    """

    def __init__(
        self,
        node: Node,
        *,
        timeout_ms: int = 10000,
        source_ip: str | None = None,
        use_ipv6: bool = False,
        ssl_context: ssl.SSLContext | None = None,
        server_hostname: str | None = None,
    ) -> None:
        self._node = node
        self._timeout = timeout_ms / 1000.0
        self._source_ip = source_ip
        self._family = socket.AF_INET6 if use_ipv6 else socket.AF_INET
        self._ssl_context = ssl_context
        self._server_hostname = server_hostname
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._state = SessionState.IDLE

    @classmethod
    async def open(
        cls,
        node: Node,
        timeout_ms: int = 10000,
        source_ip: str | None = None,
        ssl_context: ssl.SSLContext | None = None,
        *,
        use_ipv6: bool = False,
    ) -> AsyncSession:
        """Create a session and connect it."""
        session = cls(
            node,
            timeout_ms=timeout_ms,
            source_ip=source_ip,
            use_ipv6=use_ipv6,
            ssl_context=ssl_context,
        )
        await session.connect()
        return session

    @property
    def node(self) -> Node:
        return self._node

    @property
    def state(self) -> SessionState:
        return self._state

    async def connect(self) -> None:
        """
        Connect to the node, performing the TLS handshake if configured.

        Raises:
            ConnectError: On refusal, resolution failure, timeout or a
                failed handshake.
        """
        self._require(SessionState.IDLE)
        self._state = SessionState.CONNECTING
        host, port = self._node.address, self._node.port

        kwargs: dict[str, Any] = {"family": self._family}
        if self._source_ip:
            kwargs["local_addr"] = (self._source_ip, 0)
        if self._ssl_context is not None:
            kwargs["ssl"] = self._ssl_context
            if self._server_hostname:
                kwargs["server_hostname"] = self._server_hostname

        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(host, port, **kwargs),
                self._timeout,
            )
        except asyncio.TimeoutError as e:
            self._fail()
            raise ConnectError(
                f"Connection to {self._node} timed out", host, port, reason="timeout"
            ) from e
        except socket.gaierror as e:
            self._fail()
            raise ConnectError(f"Failed to resolve {host}: {e}", host, port, reason="dns") from e
        except ConnectionRefusedError as e:
            self._fail()
            raise ConnectError(
                f"Connection to {self._node} was refused", host, port, reason="refused"
            ) from e
        except ssl.SSLError as e:
            self._fail()
            raise ConnectError(
                f"TLS handshake failed for {self._node}: {e}", host, port, reason="handshake"
            ) from e
        except OSError as e:
            self._fail()
            raise ConnectError(f"Failed to connect to {self._node}: {e}", host, port) from e
        except BaseException:
            self._fail()
            raise

        self._state = SessionState.CONNECTED
        logger.debug("Connected to %s", self._node)

    async def send(self, packet: bytes) -> None:
        """
        Write the whole packet.

        Raises:
            WriteError: If the connection breaks while writing.
        """
        self._require(SessionState.CONNECTED)
        self._state = SessionState.SENDING
        try:
            self._writer.write(packet)
            await asyncio.wait_for(self._writer.drain(), self._timeout)
        except (asyncio.TimeoutError, OSError) as e:
            self._fail()
            raise WriteError(
                f"Failed to send data to {self._node}: {e}", self._node.address, self._node.port
            ) from e
        except BaseException:
            self._fail()
            raise
        self._state = SessionState.AWAITING_HEADER

    async def receive(self) -> str:
        """
        Read one packet and return its decoded payload.

        Raises:
            ProtocolError: If the header is malformed.
            UnsupportedFeatureError: If the packet uses large packet mode.
            ReadError: On premature close or read timeout.
        """
        self._require(SessionState.AWAITING_HEADER)
        try:
            header_bytes = await self._read_exactly(HEADER_SIZE, "header")
            logger.debug("Zabbix response header: %r", header_bytes)
            header = Header.from_bytes(header_bytes)

            self._state = SessionState.AWAITING_BODY
            body = await self._read_exactly(header.length, "payload")
            text = decode_packet(header_bytes, body)
        except BaseException:
            self._fail()
            raise

        self._state = SessionState.CONNECTED
        return text

    async def close(self) -> None:
        """Close the connection. Errors while closing are ignored."""
        if self._writer is not None:
            writer = self._writer
            self._writer = None
            self._reader = None
            try:
                writer.close()
                await writer.wait_closed()
            except Exception:
                pass
        if self._state != SessionState.ERRORED:
            self._state = SessionState.CLOSED

    async def _read_exactly(self, size: int, what: str) -> bytes:
        try:
            return await asyncio.wait_for(self._reader.readexactly(size), self._timeout)
        except asyncio.TimeoutError as e:
            raise ReadError(
                f"Timed out reading {what} from {self._node}",
                self._node.address,
                self._node.port,
            ) from e
        except asyncio.IncompleteReadError as e:
            raise ReadError(
                f"Incomplete {what}: got {len(e.partial)} bytes, expected {size}",
                self._node.address,
                self._node.port,
                hint="The peer closed the connection early",
            ) from e
        except OSError as e:
            raise ReadError(
                f"Failed to read {what} from {self._node}: {e}",
                self._node.address,
                self._node.port,
            ) from e

    def _require(self, state: SessionState) -> None:
        if self._state != state:
            raise RuntimeError(
                f"Session to {self._node} is {self._state.value}, expected {state.value}"
            )

    def _fail(self) -> None:
        self._state = SessionState.ERRORED
        if self._writer is not None:
            try:
                self._writer.close()
            except Exception:
                pass
            self._writer = None
            self._reader = None

    async def __aenter__(self) -> AsyncSession:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.close()


class AsyncSender(BaseSender):
    """
    Asyncio Zabbix sender.

    Chunks are sent in order; each chunk goes to all clusters concurrently.

    Example:
        >>> sender = AsyncSender(clusters=[["zbx-1", "zbx-2"], ["proxy"]])
        >>> resp = await sender.send_value("host", "key", "1")
    """

    def __init__(
        self,
        server: str | None = None,
        port: int | None = None,
        *,
        config: SenderConfig | None = None,
        use_config: bool = False,
        config_path: str = DEFAULT_CONFIG_PATH,
        ssl_context: SenderContextFactory | None = None,
        **kwargs: Any,
    ) -> None:
        """
        Initialize the sender.

        Args:
            server: Address of a single Zabbix server or proxy.
            port: Port of that server (default: 10051).
            config: Optional SenderConfig object.
            use_config: Read clusters, SourceIP and TLS options from an
                agent configuration file.
            config_path: Path of the agent configuration file.
            ssl_context: Called with the TLS options; returns the
                ssl.SSLContext used for every connection.
            **kwargs: Override config options (timeout_ms, chunk_size, etc.)

        Raises:
            ConfigError: If the configuration is invalid.
            TypeError: If ssl_context is not callable.
        """
        if ssl_context is not None and not callable(ssl_context):
            raise TypeError("Value 'ssl_context' should be a function.")

        super().__init__(
            server,
            port,
            config=config,
            use_config=use_config,
            config_path=config_path,
            **kwargs,
        )
        self._ssl_context = ssl_context

    def _create_ssl_context(self) -> ssl.SSLContext | None:
        if self._ssl_context is None:
            return None
        context = self._ssl_context(self._config.tls)
        if not isinstance(context, ssl.SSLContext):
            raise TypeError("Function 'ssl_context' must return 'ssl.SSLContext'.")
        return context

    async def _exchange(self, node: Node, session: AsyncSession, packet: bytes) -> str | None:
        """Send packet over an open session and read the reply."""
        async with session:
            try:
                await session.send(packet)
                return await session.receive()
            except (WriteError, ReadError) as e:
                logger.debug("Exchange with %s failed: %s", node, e)
                return None

    async def send_to_cluster(
        self,
        cluster: Cluster,
        packet: bytes,
        _redirects: int = 0,
    ) -> tuple[Node, dict[str, Any]]:
        """
        Send a packet to the first node of the cluster that answers.

        Same failover and redirect rules as Sender.send_to_cluster.
        """
        context = self._create_ssl_context()
        active: Node | None = None
        text: str | None = None

        for index, node in enumerate(cluster):
            logger.debug("Trying to send async data to %s", node)
            session = AsyncSession(
                node,
                timeout_ms=self._config.timeout_ms,
                source_ip=self._config.source_ip,
                use_ipv6=self._config.use_ipv6,
                ssl_context=context,
            )
            try:
                await session.connect()
            except ConnectError as e:
                logger.debug("Async connection failed to %s: %s", node, e)
                continue

            cluster.promote_to_front(index)
            text = await self._exchange(node, session, packet)
            if text is not None:
                active = node
                break

        if active is None or text is None:
            raise AllNodesUnreachableError([str(node) for node in cluster])

        response = self._handle_reply(cluster, active, text, _redirects)
        if response is None:
            return await self.send_to_cluster(cluster, packet, _redirects + 1)
        return active, response

    async def _dispatch(self, packet: bytes) -> list[tuple[Node, dict[str, Any]]]:
        results = await asyncio.gather(
            *(self.send_to_cluster(cluster, packet) for cluster in self._clusters),
            return_exceptions=True,
        )
        # All sends have finished; the first failure in cluster order wins
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)

    async def send(self, items: Iterable[ItemValue]) -> TrapperResponse:
        """
        Send item values and merge the answers of every cluster.

        Raises:
            EmptyBatchError: If items is empty.
            ConfigError: If an item is not an ItemValue.
        """
        result = TrapperResponse(aggregate=True)

        for number, chunk in self._chunks(items):
            results = await self._dispatch(self._create_packet(chunk))
            self._merge(result, number, results)

        return result

    async def send_value(
        self,
        host: str,
        key: str,
        value: Any,
        clock: int | None = None,
        ns: int | None = None,
    ) -> TrapperResponse:
        """Send one value."""
        return await self.send([ItemValue(host, key, value, clock, ns)])


class AsyncGetter(BaseGetter):
    """
    Asyncio client for the agent query protocol.

    Example:
        >>> agent = AsyncGetter("127.0.0.1", 10050)
        >>> (await agent.get("agent.ping")).value
        '1'
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        *,
        config: GetterConfig | None = None,
        ssl_context: GetterContextFactory | None = None,
        **kwargs: Any,
    ) -> None:
        if ssl_context is not None and not callable(ssl_context):
            raise TypeError("Value 'ssl_context' should be a function.")

        super().__init__(host, port, config=config, **kwargs)
        self._ssl_context = ssl_context

    async def get(self, key: str) -> AgentResponse:
        """
        Get the value of an item key from the agent.

        Raises:
            ConnectError: If the agent can't be reached.
            ReadError: If the agent closed the connection without answering.
            ProtocolError: If the reply packet is malformed.
        """
        packet = create_packet(key)

        context = None
        if self._ssl_context is not None:
            context = self._ssl_context()
            if not isinstance(context, ssl.SSLContext):
                raise TypeError("Function 'ssl_context' must return 'ssl.SSLContext'.")

        async with AsyncSession(
            self._node,
            timeout_ms=self._config.timeout_ms,
            source_ip=self._config.source_ip,
            use_ipv6=self._config.use_ipv6,
            ssl_context=context,
        ) as session:
            try:
                await session.connect()
                await session.send(packet)
            except ZabbixError as e:
                logger.error("An error occurred while trying to connect/send to %s: %s", self._node, e)
                raise

            try:
                text = await session.receive()
            except ReadError as e:
                logger.debug("Get value error: %s", e)
                logger.warning("Check access restrictions in Zabbix agent configuration.")
                raise

        logger.debug("Async response from [%s]: %s", self._node, text)
        return AgentResponse.from_text(text)
