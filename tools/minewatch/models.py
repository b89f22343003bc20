"""Pydantic models for configuration, probe results, and controller output."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Edition = Literal["unresolved", "java", "bedrock"]

LifecycleState = Literal[
    "initializing",
    "resolving",
    "publishing_address",
    "detecting_edition",
    "awaiting_first_connection",
    "monitoring",
    "shutting_down",
    "terminated",
]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class WatchdogConfig(BaseModel):
    """Process-lifetime settings for the sidecar. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    cluster: str
    service: str
    server_name: str
    dns_zone: str
    sns_topic: str | None = None
    startup_minutes: int = Field(default=10, ge=1)
    shutdown_minutes: int = Field(default=20, ge=1)
    check_interval_seconds: float = 60.0
    detect_interval_seconds: float = 1.0
    detect_ceiling_seconds: int = 600
    ping_timeout_seconds: float = 1.0

    @field_validator("sns_topic")
    @classmethod
    def _empty_topic_is_none(cls, value: str | None) -> str | None:
        return value or None

    @property
    def detect_budget_ticks(self) -> int:
        """Number of one-tick waits allowed while detecting the edition."""
        window = self.startup_minutes * 60
        seconds = min(window, self.detect_ceiling_seconds)
        return max(1, int(seconds / self.detect_interval_seconds))


# ---------------------------------------------------------------------------
# Socket table and protocol models
# ---------------------------------------------------------------------------


class SocketEntry(BaseModel):
    """One row of the local socket table."""

    local_port: int
    status: str
    kind: Literal["tcp", "udp"] = "tcp"


class PongInfo(BaseModel):
    """Server info decoded from a Bedrock unconnected pong."""

    edition: str
    motd: str
    protocol: int | None = None
    version: str
    players_online: int | None = None
    players_max: int | None = None
    fields: list[str] = []


# ---------------------------------------------------------------------------
# Controller output
# ---------------------------------------------------------------------------


class Transition(BaseModel):
    """A single recorded state change."""

    state: LifecycleState
    detail: str = ""


class RunResult(BaseModel):
    """Outcome of one controller run, consumed by the CLI to pick an exit code."""

    exit_code: int
    state: LifecycleState
    reason: str
    edition: Edition = "unresolved"
    public_ip: str | None = None
    transitions: list[Transition] = []
