# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Zabbix trapper sender.

Sends item values to one or more Zabbix clusters (HA groups of servers or
proxies) with support for:
- Failover between the nodes of a cluster
- Proxy group redirects
- Chunked bulk sending
- Sequential or concurrent fan-out to several clusters
- Optional compression and socket wrapping (TLS/PSK)

Usage Patterns:

    # Pattern 1: Single value
    from pyzbx import Sender
    sender = Sender("127.0.0.1")
    resp = sender.send_value("host", "item.key", "42")

    # Pattern 2: Bulk sending to several clusters at once
    from pyzbx import ItemValue, Sender, ThreadedDispatcher
    sender = Sender(
        clusters=[["zbx-1:10051", "zbx-2:10051"], ["proxy:10051"]],
        dispatcher=ThreadedDispatcher(),
    )
    resp = sender.send([ItemValue("host", "key", v) for v in values])
    print(resp.processed, resp.failed)

The asyncio variant lives in pyzbx.aio.
"""

from __future__ import annotations

import json
import logging
import socket
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

from pydantic import ValidationError

from .config import DEFAULT_CONFIG_PATH, AgentConfig
from .exceptions import (
    AllNodesUnreachableError,
    ConfigError,
    ConnectError,
    EmptyBatchError,
    ParseError,
    ReadError,
    ServerRejectedError,
    WriteError,
)
from .models import ItemValue, SenderConfig, TrapperReply
from .protocol import TRAPPER_PORT, create_packet
from .session import Session
from .types import Cluster, Node, TrapperResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")

SenderSocketWrapper = Callable[[socket.socket, dict[str, str]], socket.socket]


class Dispatcher(ABC):
    """Strategy that runs one send per cluster for a chunk."""

    @abstractmethod
    def dispatch(self, send: Callable[[Cluster], T], clusters: Sequence[Cluster]) -> list[T]:
        """
        Run send for every cluster.

        Returns only after every send has finished, with results in cluster
        order. The first failure (in cluster order) is raised.
        """


class SequentialDispatcher(Dispatcher):
    """Sends to clusters one after another, one socket open at a time."""

    def dispatch(self, send: Callable[[Cluster], T], clusters: Sequence[Cluster]) -> list[T]:
        return [send(cluster) for cluster in clusters]


class ThreadedDispatcher(Dispatcher):
    """
    Sends to all clusters concurrently and joins on all of them.

    Example:
        >>> sender = Sender(clusters=[["a:10051"], ["b:10051"]],
        ...                 dispatcher=ThreadedDispatcher(max_workers=4))
    """

    def __init__(self, max_workers: int | None = None) -> None:
        if max_workers is not None and max_workers < 1:
            raise ConfigError("max_workers must be at least 1")
        self._max_workers = max_workers

    def dispatch(self, send: Callable[[Cluster], T], clusters: Sequence[Cluster]) -> list[T]:
        if len(clusters) <= 1:
            return [send(cluster) for cluster in clusters]

        workers = self._max_workers or len(clusters)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="pyzbx-sender") as executor:
            futures = [executor.submit(send, cluster) for cluster in clusters]
            # Leaving the block waits for every future, even when one failed
            return [future.result() for future in futures]


class BaseSender:
    """
    Configuration, batching and reply handling shared by Sender and AsyncSender.

    Subclasses supply the I/O: connecting to the nodes of a cluster and
    exchanging one packet.
    """

    def __init__(
        self,
        server: str | None = None,
        port: int | None = None,
        *,
        config: SenderConfig | None = None,
        use_config: bool = False,
        config_path: str = DEFAULT_CONFIG_PATH,
        **kwargs: Any,
    ) -> None:
        try:
            if config is None:
                if server is not None:
                    kwargs["server"] = server
                if port is not None:
                    kwargs["port"] = port
                config = SenderConfig(**kwargs)
            else:
                if server is not None:
                    config.server = server
                if port is not None:
                    config.port = port
                for key, value in kwargs.items():
                    setattr(config, key, value)
        except ValueError as e:
            raise ConfigError(f"Invalid sender configuration: {e}") from e

        if use_config:
            agent_config = AgentConfig.from_file(config_path)
            config.clusters = agent_config.clusters
            config.server = None
            if agent_config.source_ip:
                config.source_ip = agent_config.source_ip
            config.tls = agent_config.tls

        self._config = config
        self._clusters = [Cluster(addresses, TRAPPER_PORT) for addresses in config.get_clusters()]

    @property
    def config(self) -> SenderConfig:
        return self._config

    @property
    def clusters(self) -> list[Cluster]:
        """Configured clusters, in sending order."""
        return list(self._clusters)

    def _handle_reply(
        self,
        cluster: Cluster,
        active: Node,
        text: str,
        redirects: int,
    ) -> dict[str, Any] | None:
        """
        Interpret the reply of the active node.

        Returns the decoded reply on success. On a redirect the active slot
        (index 0) is replaced with the target and None is returned; the
        caller sends again.
        """
        try:
            response = json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(f"Received invalid JSON from {active}: {text[:200]}") from e
        logger.debug("Response from %s: %s", active, response)

        try:
            reply = TrapperReply.model_validate(response)
        except ValidationError as e:
            raise ParseError(f"Received unexpected response from {active}: {response}") from e

        if reply.success:
            return response

        if reply.redirect is None:
            raise ServerRejectedError(response)

        if redirects >= self._config.max_redirects:
            raise ServerRejectedError(
                response,
                f"Too many redirects ({redirects}) while sending to {cluster}: {response}",
            )

        logger.debug(
            "Packet was redirected from %s to %s. Proxy group revision: %s.",
            active,
            reply.redirect.address,
            reply.redirect.revision,
        )
        try:
            target = Node.parse(reply.redirect.address, TRAPPER_PORT)
        except ConfigError as e:
            raise ServerRejectedError(response, f"Invalid redirect address: {response}") from e
        cluster.replace(0, target)
        return None

    def _create_request(self, items: Sequence[ItemValue]) -> dict[str, Any]:
        return {
            "request": "sender data",
            "data": [item.to_dict() for item in items],
        }

    def _create_packet(self, items: Sequence[ItemValue]) -> bytes:
        return create_packet(self._create_request(items), self._config.compression)

    def _chunks(self, items: Iterable[ItemValue]) -> Iterator[tuple[int, list[ItemValue]]]:
        """
        Validate items and split them into numbered chunks.

        Raises:
            EmptyBatchError: If items is empty.
            ConfigError: If an item is not an ItemValue.
        """
        items = list(items)
        if not items:
            raise EmptyBatchError()

        for item in items:
            if not isinstance(item, ItemValue):
                raise ConfigError(
                    f"Received unexpected item list. It must be a list of ItemValue objects: {item!r}"
                )

        size = self._config.chunk_size
        for start in range(0, len(items), size):
            yield start // size + 1, items[start:start + size]

    @staticmethod
    def _merge(
        result: TrapperResponse,
        number: int,
        results: Iterable[tuple[Node, dict[str, Any]]],
    ) -> None:
        for node, response in results:
            result.add(response, number)

            chunk_response = TrapperResponse(number)
            chunk_response.add(response)
            result.record(str(node), chunk_response)


class Sender(BaseSender):
    """
    Zabbix sender with cluster failover and chunked bulk sending.

    Example:
        >>> sender = Sender("127.0.0.1", 10051, chunk_size=100)
        >>> resp = sender.send_value("host", "key", "1")
        >>> print(resp)
        {"processed": 1, "failed": 0, "total": 1, "time": 5.5e-05, "chunk": 1}
    """

    def __init__(
        self,
        server: str | None = None,
        port: int | None = None,
        *,
        config: SenderConfig | None = None,
        use_config: bool = False,
        config_path: str = DEFAULT_CONFIG_PATH,
        socket_wrapper: SenderSocketWrapper | None = None,
        dispatcher: Dispatcher | None = None,
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
            socket_wrapper: Called with each connected socket and the TLS
                options; returns the socket to use instead.
            dispatcher: Fan-out strategy (default: SequentialDispatcher).
            **kwargs: Override config options (timeout_ms, chunk_size, etc.)

        Raises:
            ConfigError: If the configuration is invalid.
            TypeError: If socket_wrapper is not callable.
        """
        if socket_wrapper is not None and not callable(socket_wrapper):
            raise TypeError("Value 'socket_wrapper' should be a function.")

        super().__init__(
            server,
            port,
            config=config,
            use_config=use_config,
            config_path=config_path,
            **kwargs,
        )
        self._socket_wrapper = socket_wrapper
        self._dispatcher = dispatcher or SequentialDispatcher()

    def _wrap_socket(self, sock: socket.socket) -> socket.socket:
        return self._socket_wrapper(sock, self._config.tls)

    def _exchange(self, node: Node, session: Session, packet: bytes) -> str | None:
        """Send packet over an open session and read the reply."""
        with session:
            try:
                session.send(packet)
                return session.receive()
            except (WriteError, ReadError) as e:
                logger.debug("Exchange with %s failed: %s", node, e)
                return None

    def send_to_cluster(
        self,
        cluster: Cluster,
        packet: bytes,
        _redirects: int = 0,
    ) -> tuple[Node, dict[str, Any]]:
        """
        Send a packet to the first node of the cluster that answers.

        Nodes are tried in their current order; the node that accepted the
        connection is moved to the front of the cluster. A redirect reply
        replaces that node with the redirect target and sends again, up to
        max_redirects times.

        Returns:
            Tuple of the answering node and its decoded reply.

        Raises:
            AllNodesUnreachableError: If no node accepted the packet.
            ServerRejectedError: If the reply is not a success.
            ParseError: If the reply is not a JSON object.
            ProtocolError: If the reply packet is malformed.
        """
        active: Node | None = None
        text: str | None = None

        for index, node in enumerate(cluster):
            logger.debug("Trying to send data to %s", node)
            try:
                session = Session.open(
                    node,
                    timeout_ms=self._config.timeout_ms,
                    source_ip=self._config.source_ip,
                    wrapper=self._wrap_socket if self._socket_wrapper else None,
                    use_ipv6=self._config.use_ipv6,
                )
            except ConnectError as e:
                logger.debug("Connection failed to %s: %s", node, e)
                continue

            cluster.promote_to_front(index)
            text = self._exchange(node, session, packet)
            if text is not None:
                active = node
                break

        if active is None or text is None:
            raise AllNodesUnreachableError([str(node) for node in cluster])

        response = self._handle_reply(cluster, active, text, _redirects)
        if response is None:
            return self.send_to_cluster(cluster, packet, _redirects + 1)
        return active, response

    def send(self, items: Iterable[ItemValue]) -> TrapperResponse:
        """
        Send item values and merge the answers of every cluster.

        Items are split into chunks of chunk_size, sent in order. Each chunk
        goes to every configured cluster before the next one starts.

        Args:
            items: ItemValue objects.

        Returns:
            TrapperResponse with totals over all chunks and clusters. Its
            details map node addresses to their per-chunk responses.

        Raises:
            EmptyBatchError: If items is empty.
            ConfigError: If an item is not an ItemValue.
        """
        result = TrapperResponse(aggregate=True)

        for number, chunk in self._chunks(items):
            packet = self._create_packet(chunk)
            results = self._dispatcher.dispatch(
                lambda cluster: self.send_to_cluster(cluster, packet),
                self._clusters,
            )
            self._merge(result, number, results)

        return result

    def send_value(
        self,
        host: str,
        key: str,
        value: Any,
        clock: int | None = None,
        ns: int | None = None,
    ) -> TrapperResponse:
        """
        Send one value.

        Args:
            host: Host name the item belongs to.
            key: Item key to send the value to.
            value: Item value.
            clock: Unix timestamp (default: now).
            ns: Nanoseconds part of the timestamp.
        """
        return self.send([ItemValue(host, key, value, clock, ns)])
