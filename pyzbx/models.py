# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Pydantic models for the pyzbx SDK.

Provides validated configuration objects, the item value sent to the
trapper, and the shape of the trapper's JSON reply.
"""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .protocol import AGENT_PORT, TRAPPER_PORT


# ============================================================================
# Data Models
# ============================================================================


class ItemValue(BaseModel):
    """
    A single value for a trapper item.

    Values are always sent as text; numbers are converted on construction.

    Example:
        >>> item = ItemValue("host", "temp", 21.5, clock=1695713666)
        >>> item.to_dict()
        {'host': 'host', 'key': 'temp', 'value': '21.5', 'clock': 1695713666}
    """

    model_config = ConfigDict(frozen=True)

    host: str
    key: str
    value: str
    clock: int = Field(default_factory=lambda: int(time.time()))
    ns: int | None = None

    def __init__(
        self,
        host: str,
        key: str,
        value: Any,
        clock: int | float | None = None,
        ns: int | None = None,
    ) -> None:
        data: dict[str, Any] = {"host": host, "key": key, "value": value, "ns": ns}
        if clock is not None:
            data["clock"] = clock
        super().__init__(**data)

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, v: Any) -> str:
        if isinstance(v, bytes):
            return v.decode("utf-8")
        return v if isinstance(v, str) else str(v)

    @field_validator("clock", mode="before")
    @classmethod
    def coerce_clock(cls, v: Any) -> Any:
        if isinstance(v, float):
            return int(v)
        return v

    def to_dict(self) -> dict[str, Any]:
        """Payload shape of one entry of a "sender data" request."""
        return self.model_dump(exclude_none=True)

    def __str__(self) -> str:
        return self.model_dump_json(exclude_none=True)


class Redirect(BaseModel):
    """Redirect instruction from a proxy group member."""

    model_config = ConfigDict(extra="allow")

    address: str
    revision: int | None = None


class TrapperReply(BaseModel):
    """JSON reply of a Zabbix server or proxy to a "sender data" request."""

    model_config = ConfigDict(extra="allow")

    response: str | None = None
    info: str | None = None
    redirect: Redirect | None = None

    @property
    def success(self) -> bool:
        return self.response == "success"


# ============================================================================
# Configuration Models
# ============================================================================


class SenderConfig(BaseModel):
    """Configuration for the trapper sender."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    server: str | None = Field(
        default=None,
        description="Address of a single server; appended as its own cluster",
    )
    port: int = Field(default=TRAPPER_PORT, ge=1, le=65535)
    clusters: list[list[str]] | None = Field(
        default=None,
        description="List of clusters, each a list of 'host[:port]' strings",
    )
    timeout_ms: int = Field(default=10000, ge=1, le=600000)
    use_ipv6: bool = False
    source_ip: str | None = None
    chunk_size: int = Field(default=250, ge=1)
    compression: bool = False
    max_redirects: int = Field(default=3, ge=0, le=100)
    tls: dict[str, str] = Field(default_factory=dict)

    def get_clusters(self) -> list[list[str]]:
        """Get the address lists of every configured cluster."""
        server = self.server or "127.0.0.1"
        if ":" in server and not server.startswith("["):
            server = f"[{server}]"
        if self.clusters is not None:
            clusters = [list(c) for c in self.clusters]
            if self.server:
                clusters.append([f"{server}:{self.port}"])
            return clusters
        return [[f"{server}:{self.port}"]]


class GetterConfig(BaseModel):
    """Configuration for the agent getter."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    host: str = "127.0.0.1"
    port: int = Field(default=AGENT_PORT, ge=1, le=65535)
    timeout_ms: int = Field(default=10000, ge=1, le=600000)
    use_ipv6: bool = False
    source_ip: str | None = None
