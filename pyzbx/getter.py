# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Zabbix agent getter.

Polls a single Zabbix agent for the value of one item key, like the
zabbix_get utility:

    from pyzbx import Getter
    agent = Getter("127.0.0.1")
    resp = agent.get("system.uname")
    print(resp.value if resp.ok else resp.error)
"""

from __future__ import annotations

import logging
from typing import Any

from .exceptions import ConfigError, ReadError, ZabbixError
from .models import GetterConfig
from .protocol import create_packet
from .session import Session, SocketWrapper
from .types import AgentResponse, Node

logger = logging.getLogger(__name__)


class BaseGetter:
    """Configuration shared by Getter and AsyncGetter."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        *,
        config: GetterConfig | None = None,
        **kwargs: Any,
    ) -> None:
        try:
            if config is None:
                if host is not None:
                    kwargs["host"] = host
                if port is not None:
                    kwargs["port"] = port
                config = GetterConfig(**kwargs)
            else:
                if host is not None:
                    config.host = host
                if port is not None:
                    config.port = port
                for key, value in kwargs.items():
                    setattr(config, key, value)
        except ValueError as e:
            raise ConfigError(f"Invalid getter configuration: {e}") from e

        self._config = config
        self._node = Node.parse(config.host, config.port)

    @property
    def config(self) -> GetterConfig:
        return self._config

    @property
    def node(self) -> Node:
        """Agent address."""
        return self._node


class Getter(BaseGetter):
    """
    Client for the agent query protocol.

    Example:
        >>> agent = Getter("127.0.0.1", 10050, timeout_ms=3000)
        >>> agent.get("agent.ping").value
        '1'
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        *,
        config: GetterConfig | None = None,
        socket_wrapper: SocketWrapper | None = None,
        **kwargs: Any,
    ) -> None:
        """
        Initialize the getter.

        Args:
            host: Agent address (default: 127.0.0.1).
            port: Agent port (default: 10050).
            config: Optional GetterConfig object.
            socket_wrapper: Called with the connected socket; returns the
                socket to use instead (e.g. for TLS/PSK).
            **kwargs: Override config options (timeout_ms, source_ip, etc.)
        """
        if socket_wrapper is not None and not callable(socket_wrapper):
            raise TypeError("Value 'socket_wrapper' should be a function.")

        super().__init__(host, port, config=config, **kwargs)
        self._socket_wrapper = socket_wrapper

    def get(self, key: str) -> AgentResponse:
        """
        Get the value of an item key from the agent.

        Args:
            key: Zabbix item key.

        Returns:
            AgentResponse with either value or error set.

        Raises:
            ConnectError: If the agent can't be reached.
            ReadError: If the agent closed the connection without answering.
            ProtocolError: If the reply packet is malformed.
        """
        packet = create_packet(key)

        with Session(
            self._node,
            timeout_ms=self._config.timeout_ms,
            source_ip=self._config.source_ip,
            use_ipv6=self._config.use_ipv6,
            wrapper=self._socket_wrapper,
        ) as session:
            try:
                session.connect()
                session.send(packet)
            except ZabbixError as e:
                logger.error("An error occurred while trying to connect/send to %s: %s", self._node, e)
                raise

            try:
                text = session.receive()
            except ReadError as e:
                logger.debug("Get value error: %s", e)
                logger.warning("Check access restrictions in Zabbix agent configuration.")
                raise

        logger.debug("Response from [%s]: %s", self._node, text)
        return AgentResponse.from_text(text)
