# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
TLS configuration for Zabbix connections.

The protocol code never performs TLS itself: it calls a socket wrapper once
per connection. TLSConfig builds such a wrapper for certificate-based TLS.
PSK needs a wrapper from a library with PSK support.
"""

from __future__ import annotations

import socket
import ssl
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Optional


@dataclass
class TLSConfig:
    """
    TLS/SSL configuration for secure connections.

    Examples:
        # Certificate verification against a private CA
        >>> tls = TLSConfig(
        ...     ca_file="/etc/zabbix/ca.crt",
        ...     cert_file="/etc/zabbix/agent.crt",
        ...     key_file="/etc/zabbix/agent.key",
        ... )
        >>> sender = Sender("zabbix.example.com", socket_wrapper=tls.socket_wrapper())

        # Settings of an agent configuration file
        >>> tls = TLSConfig.from_agent_options({"TLSCAFile": "/etc/zabbix/ca.crt"})
    """

    ca_file: Optional[str] = None
    """Path to CA certificate file for server verification."""

    cert_file: Optional[str] = None
    """Path to client certificate file (for mutual TLS)."""

    key_file: Optional[str] = None
    """Path to client private key file (for mutual TLS)."""

    server_name: Optional[str] = None
    """Expected server name in certificate (for SNI and verification)."""

    insecure_skip_verify: bool = False
    """Skip certificate verification (INSECURE - use only for testing)."""

    @classmethod
    def from_agent_options(cls, options: Mapping[str, str]) -> TLSConfig:
        """Build from the TLS* options of an agent configuration file."""
        return cls(
            ca_file=options.get("TLSCAFile"),
            cert_file=options.get("TLSCertFile"),
            key_file=options.get("TLSKeyFile"),
            server_name=options.get("TLSServerName"),
        )

    def create_context(self) -> ssl.SSLContext:
        """Create the client SSL context."""
        context = ssl.create_default_context()

        if self.insecure_skip_verify:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        else:
            if self.ca_file:
                context.load_verify_locations(self.ca_file)
            # Hostname checks need server_name
            context.check_hostname = self.server_name is not None

        if self.cert_file and self.key_file:
            context.load_cert_chain(self.cert_file, self.key_file)

        return context

    def socket_wrapper(self) -> Callable[..., socket.socket]:
        """
        Create a socket wrapper usable by both Sender and Getter.

        The SSL context is built once, when this method is called.
        """
        context = self.create_context()

        def wrap(sock: socket.socket, tls_options: Mapping[str, str] | None = None) -> socket.socket:
            return context.wrap_socket(sock, server_hostname=self.server_name)

        return wrap

    def context_factory(self) -> Callable[..., ssl.SSLContext]:
        """
        Create an ssl_context factory usable by both AsyncSender and AsyncGetter.

        asyncio uses the node address as the TLS server name.
        """
        context = self.create_context()

        def factory(tls_options: Mapping[str, str] | None = None) -> ssl.SSLContext:
            return context

        return factory
