"""Edition detection and client-activity probing.

Java edition is recognised by a TCP listener on the game port and is
considered ready once RCON is listening too. Bedrock edition is recognised
by a bound UDP socket on its port. Activity is then answered per edition:
established TCP sockets for Java, a responsive unconnected ping for Bedrock.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog

from minewatch.bedrock_ping import is_server_responsive, send_ping
from minewatch.clock import Ticker
from minewatch.connections import ConnectionInspector, count_established, is_listening
from minewatch.errors import EditionDetectionError
from minewatch.models import Edition

logger = structlog.get_logger(__name__)

JAVA_PORT = 25565
RCON_PORT = 25575
BEDROCK_PORT = 19132
BEDROCK_HOST = "127.0.0.1"


# ---------------------------------------------------------------------------
# Edition detection
# ---------------------------------------------------------------------------


def detect_edition(
    inspector: ConnectionInspector,
    ticker: Ticker,
    max_ticks: int,
    interval: float = 1.0,
) -> Edition:
    """Poll listeners until one edition's port is bound.

    The same tick budget covers waiting for RCON after the Java port shows
    up. Raises EditionDetectionError when the budget runs out.
    """
    logger.info("Determining Minecraft edition from listening ports")
    ticks = 0
    while True:
        if is_listening(inspector, JAVA_PORT):
            logger.info("Detected edition", edition="java")
            _wait_for_rcon(inspector, ticker, max_ticks - ticks, interval)
            return "java"
        if is_listening(inspector, BEDROCK_PORT):
            logger.info("Detected edition", edition="bedrock")
            return "bedrock"
        if ticks >= max_ticks:
            raise EditionDetectionError(
                f"No Minecraft server listening after {ticks} checks"
            )
        ticker.sleep(interval)
        ticks += 1


def _wait_for_rcon(
    inspector: ConnectionInspector,
    ticker: Ticker,
    remaining_ticks: int,
    interval: float,
) -> None:
    logger.info("Waiting for RCON to begin listening", port=RCON_PORT)
    ticks = 0
    while not is_listening(inspector, RCON_PORT):
        if ticks >= remaining_ticks:
            raise EditionDetectionError("RCON port never started listening")
        ticker.sleep(interval)
        ticks += 1
    logger.info("RCON is listening, ready for clients")


# ---------------------------------------------------------------------------
# Activity probe
# ---------------------------------------------------------------------------


class ActivityProbe:
    """Answers "is a client connected right now?" for a resolved edition.

    Every call re-reads live state; nothing is cached between polls. Probe
    failures are logged and reported as no activity.
    """

    def __init__(
        self,
        inspector: ConnectionInspector,
        ping: Callable[[str, int, float], bytes] = send_ping,
        ping_timeout: float = 1.0,
    ) -> None:
        self._inspector = inspector
        self._ping = ping
        self._ping_timeout = ping_timeout

    def is_active(self, edition: Edition) -> bool:
        if edition == "java":
            return count_established(self._inspector, JAVA_PORT) > 0
        if edition == "bedrock":
            return self._bedrock_responds()
        logger.warning("Activity probe called before edition was resolved")
        return False

    def _bedrock_responds(self) -> bool:
        try:
            reply = self._ping(BEDROCK_HOST, BEDROCK_PORT, self._ping_timeout)
        except OSError as exc:
            logger.warning("Bedrock ping failed", error=str(exc))
            return False
        if not is_server_responsive(reply):
            logger.warning("Malformed Bedrock pong", size=len(reply))
            return False
        return True
