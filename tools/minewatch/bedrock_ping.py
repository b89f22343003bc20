"""Bedrock (RakNet) unconnected ping codec and UDP transport.

Datagram layout sent to the server::

    0x01                         message id: unconnected ping
    00 00 00 00 00 00 4e 20      8-byte big-endian timestamp (fixed)
    00 ff ff 00 fe fe fe fe      16-byte offline message magic
    fd fd fd fd 12 34 56 78
    <16 ASCII hex chars>         8 random GUID bytes, hex-encoded

A pong carries a 35-byte header (id, time, server GUID, magic, 2-byte string
length) followed by a ``;``-separated server info string. Responsiveness is
judged on everything from offset 34, which takes in the low length byte but
leaves the field count unchanged.
"""

from __future__ import annotations

import os
import socket

from minewatch.models import PongInfo

UNCONNECTED_PING = 0x01
PING_TIMESTAMP = bytes([0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x4E, 0x20])
MAGIC = bytes(
    [
        0x00, 0xFF, 0xFF, 0x00, 0xFE, 0xFE, 0xFE, 0xFE,
        0xFD, 0xFD, 0xFD, 0xFD, 0x12, 0x34, 0x56, 0x78,
    ]
)
MAGIC_OFFSET = 1 + len(PING_TIMESTAMP)
GUID_SIZE = 8
PONG_HEADER_SIZE = 34
PONG_INFO_OFFSET = 35
MIN_PONG_FIELDS = 5
RECV_BUFFER = 1024


def build_unconnected_ping(guid: bytes | None = None) -> bytes:
    """Build the unconnected ping datagram.

    ``guid`` defaults to 8 random bytes; it is appended hex-encoded.
    """
    if guid is None:
        guid = os.urandom(GUID_SIZE)
    if len(guid) != GUID_SIZE:
        raise ValueError(f"GUID must be {GUID_SIZE} bytes, got {len(guid)}")
    return (
        bytes([UNCONNECTED_PING])
        + PING_TIMESTAMP
        + MAGIC
        + guid.hex().encode("ascii")
    )


def is_server_responsive(data: bytes) -> bool:
    """Return True if a pong carries a well-formed server info payload.

    Only the presence of at least five info fields is checked. The player
    count inside the payload is not consulted.
    """
    if len(data) < PONG_HEADER_SIZE:
        return False
    return len(data[PONG_HEADER_SIZE:].split(b";")) >= MIN_PONG_FIELDS


def _to_int(value: str) -> int | None:
    try:
        return int(value)
    except ValueError:
        return None


def parse_pong(data: bytes) -> PongInfo | None:
    """Decode the server info string of a pong, or None if malformed."""
    if not is_server_responsive(data):
        return None
    fields = data[PONG_INFO_OFFSET:].decode("utf-8", errors="replace").split(";")
    if len(fields) < MIN_PONG_FIELDS:
        return None
    return PongInfo(
        edition=fields[0],
        motd=fields[1],
        protocol=_to_int(fields[2]),
        version=fields[3],
        players_online=_to_int(fields[4]),
        players_max=_to_int(fields[5]) if len(fields) > 5 else None,
        fields=fields,
    )


def send_ping(host: str, port: int, timeout: float = 1.0) -> bytes:
    """Send one unconnected ping and return the raw reply.

    Raises OSError (including socket.timeout) on any transport failure.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.connect((host, port))
        sock.send(build_unconnected_ping())
        sock.settimeout(timeout)
        return sock.recv(RECV_BUFFER)
