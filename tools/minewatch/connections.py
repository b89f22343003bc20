"""Local socket-table inspection.

The controller never looks at psutil directly; it asks a ConnectionInspector
for a snapshot and filters it with the helpers below. Tests substitute a
scripted inspector.
"""

from __future__ import annotations

import socket
from typing import Protocol

import psutil
import structlog

from minewatch.models import SocketEntry

logger = structlog.get_logger(__name__)

LISTEN = "LISTEN"
ESTABLISHED = "ESTABLISHED"


class ConnectionInspector(Protocol):
    """Anything that can list the sockets bound on this host."""

    def connections(self) -> list[SocketEntry]: ...


class PsutilInspector:
    """Reads the OS connection table through psutil."""

    def __init__(self, kind: str = "inet") -> None:
        self._kind = kind

    def connections(self) -> list[SocketEntry]:
        try:
            raw = psutil.net_connections(kind=self._kind)
        except (psutil.AccessDenied, OSError) as exc:
            logger.warning("Failed to read socket table", error=str(exc))
            return []

        entries: list[SocketEntry] = []
        for conn in raw:
            if not conn.laddr:
                continue
            entries.append(
                SocketEntry(
                    local_port=conn.laddr.port,
                    status=conn.status,
                    kind="udp" if conn.type == socket.SOCK_DGRAM else "tcp",
                )
            )
        return entries


def is_listening(inspector: ConnectionInspector, port: int) -> bool:
    """True if a TCP listener or a bound UDP socket exists on the port."""
    for entry in inspector.connections():
        if entry.local_port != port:
            continue
        if entry.status == LISTEN:
            return True
        # psutil reports bound UDP sockets with status NONE
        if entry.kind == "udp":
            return True
    return False


def count_established(inspector: ConnectionInspector, port: int) -> int:
    """Number of ESTABLISHED sockets whose local port is the given port."""
    return sum(
        1
        for entry in inspector.connections()
        if entry.local_port == port and entry.status == ESTABLISHED
    )
