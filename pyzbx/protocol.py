# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Zabbix Binary Protocol Implementation.

Shared by the trapper (sender) and agent (get) protocols.

Protocol Format:
    +-------+-------+-------+-------+-------+----------------------------+
    |        Magic ("ZBXD")         | Flags | Length (4 bytes, LE)       |
    +-------+-------+-------+-------+-------+----------------------------+
    | Uncompressed length (4 bytes, LE)     | Payload (Length bytes) ... |
    +---------------------------------------+----------------------------+

Header Fields:
    - Magic (4 bytes): b"ZBXD" - Identifies Zabbix protocol
    - Flags (1 byte): 0x01 protocol, 0x02 compressed, 0x04 large packet
    - Length (4 bytes): Number of payload bytes following the header
    - Uncompressed length (4 bytes): Payload size before compression
"""

from __future__ import annotations

import json
import logging
import struct
import zlib
from dataclasses import dataclass
from enum import IntFlag
from typing import Any

from .exceptions import EncodingError, ProtocolError, UnsupportedFeatureError

logger = logging.getLogger(__name__)

# Protocol constants
MAGIC: bytes = b"ZBXD"
HEADER_SIZE: int = 13
HEADER_FORMAT: str = "<4sBII"
TRAPPER_PORT: int = 10051
AGENT_PORT: int = 10050
NOT_SUPPORTED: str = "ZBX_NOTSUPPORTED"

_LOG_PREVIEW = 200


class Flags(IntFlag):
    """Header flag bits."""

    PROTOCOL = 0x01
    COMPRESSED = 0x02
    LARGE_PACKET = 0x04


@dataclass(frozen=True)
class Header:
    """Protocol packet header."""

    flags: int
    length: int
    uncompressed_length: int
    magic: bytes = MAGIC

    def to_bytes(self) -> bytes:
        """Serialize header to bytes."""
        return struct.pack(
            HEADER_FORMAT,
            self.magic,
            self.flags,
            self.length,
            self.uncompressed_length,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> Header:
        """
        Deserialize and validate a header.

        Raises:
            ProtocolError: On wrong size, wrong magic or a missing protocol flag.
            UnsupportedFeatureError: If the large packet flag is set.
        """
        if len(data) != HEADER_SIZE or data[:4] != MAGIC:
            logger.debug("Unexpected header was received: %r", data)
            raise ProtocolError(
                "Unexpected response was received from Zabbix.",
                hint="Check that the address points to a Zabbix server, proxy or agent",
            )

        magic, flags, length, uncompressed_length = struct.unpack(HEADER_FORMAT, data)

        if flags & Flags.LARGE_PACKET:
            raise UnsupportedFeatureError(
                "A large packet flag was received. "
                "Current module doesn't support large packets."
            )
        if not flags & Flags.PROTOCOL:
            raise ProtocolError(
                f"Unexpected flags were received: 0x{flags:02X}",
            )

        return cls(
            flags=flags,
            length=length,
            uncompressed_length=uncompressed_length,
            magic=magic,
        )

    @property
    def compressed(self) -> bool:
        """Whether the payload following this header is deflated."""
        return bool(self.flags & Flags.COMPRESSED)


def prepare_request(data: bytes | str | list[Any] | dict[str, Any]) -> bytes:
    """
    Convert a request payload to raw bytes.

    Structured values (dicts and lists) are serialized to JSON text.

    Raises:
        EncodingError: For any other value type.
    """
    if isinstance(data, bytes):
        return data
    if isinstance(data, str):
        return data.encode("utf-8")
    if isinstance(data, (list, dict)):
        return json.dumps(data, ensure_ascii=False).encode("utf-8")
    raise EncodingError(
        f"Unsupported data type '{type(data).__name__}', "
        "only 'bytes', 'str', 'list' or 'dict' is expected"
    )


def create_packet(
    payload: bytes | str | list[Any] | dict[str, Any],
    compression: bool = False,
) -> bytes:
    """
    Create a packet for sending via the Zabbix protocol.

    Args:
        payload: Packet payload. Lists and dicts are sent as JSON.
        compression: Deflate the payload and set the compression flag.

    Returns:
        Header followed by the (possibly compressed) payload.
    """
    request = prepare_request(payload)

    if logger.isEnabledFor(logging.DEBUG):
        text = request.decode("utf-8", errors="replace")
        if len(text) > _LOG_PREVIEW:
            text = text[: _LOG_PREVIEW - 3] + "..."
        logger.debug("Request data: %s", text)

    flags = Flags.PROTOCOL
    data = request
    if compression:
        data = zlib.compress(request)
        flags |= Flags.COMPRESSED

    header = Header(flags=flags, length=len(data), uncompressed_length=len(request))
    return header.to_bytes() + data


def decode_packet(header_bytes: bytes, body: bytes) -> str:
    """
    Decode a received packet to text.

    Args:
        header_bytes: Exactly HEADER_SIZE bytes.
        body: Payload bytes following the header.

    Returns:
        Payload as UTF-8 text, inflated if the compression flag is set.

    Raises:
        ProtocolError: If the header is malformed, the body is truncated
            or the compressed payload is corrupt.
        UnsupportedFeatureError: If the large packet flag is set.
    """
    header = Header.from_bytes(header_bytes)

    if len(body) != header.length:
        raise ProtocolError(
            f"Incomplete payload: got {len(body)} bytes, expected {header.length}"
        )

    if header.compressed:
        try:
            body = zlib.decompress(body)
        except zlib.error as e:
            raise ProtocolError(f"Failed to decompress payload: {e}") from e

    try:
        return body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ProtocolError(f"Payload is not valid UTF-8: {e}") from e


def parse_address(address: str, default_port: int) -> tuple[str, int]:
    """
    Split a "host[:port]" string.

    Bracketed IPv6 literals ("[::1]:10051") are accepted.
    """
    address = address.strip()
    if address.startswith("["):
        host, _, rest = address[1:].partition("]")
        port = rest[1:] if rest.startswith(":") else ""
    elif address.count(":") == 1:
        host, port = address.split(":")
    else:
        host, port = address, ""
    return host, int(port) if port else default_port
