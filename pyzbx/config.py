# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Zabbix agent configuration file support.

Lets a Sender reuse the active checks settings of a local agent:

    ServerActive=zbx-1:10051;zbx-2:10051,proxy.example.com
    SourceIP=10.0.0.5
    TLSConnect=cert
    TLSCAFile=/etc/zabbix/ca.crt

Commas separate clusters, semicolons separate the nodes of one cluster.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from pydantic import BaseModel, Field

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/etc/zabbix/zabbix_agentd.conf"
DEFAULT_SERVER = "127.0.0.1:10051"


def parse_lines(lines: Iterable[str]) -> dict[str, str]:
    """Parse "key=value" lines, skipping blanks and comments."""
    options: dict[str, str] = {}
    for line in lines:
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if sep and key.strip():
            options[key.strip()] = value.strip()
    return options


class AgentConfig(BaseModel):
    """Settings the sender takes from an agent configuration file."""

    clusters: list[list[str]] = Field(default_factory=list)
    source_ip: str | None = None
    tls: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_mapping(cls, options: Mapping[str, str]) -> AgentConfig:
        """Build from already parsed options."""
        server_row = options.get("ServerActive") or options.get("Server") or DEFAULT_SERVER

        clusters = []
        for cluster in server_row.split(","):
            nodes = [node.strip() for node in cluster.split(";") if node.strip()]
            if nodes:
                clusters.append(nodes)
        if not clusters:
            raise ConfigError(f"No server addresses found in '{server_row}'")

        tls = {key: value for key, value in options.items() if key.lower().startswith("tls")}

        return cls(
            clusters=clusters,
            source_ip=options.get("SourceIP") or None,
            tls=tls,
        )

    @classmethod
    def from_file(cls, path: str = DEFAULT_CONFIG_PATH) -> AgentConfig:
        """
        Load an agent configuration file.

        Raises:
            ConfigError: If the file can't be read.
        """
        logger.debug("Loading agent configuration from %s", path)
        try:
            with open(path, encoding="utf-8") as f:
                options = parse_lines(f)
        except OSError as e:
            raise ConfigError(
                f"Failed to read configuration file {path}: {e}",
                hint="Pass config_path or configure clusters explicitly",
            ) from e
        return cls.from_mapping(options)
