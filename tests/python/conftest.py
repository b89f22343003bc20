"""Shared fixtures and fakes for minewatch Python tests."""

from __future__ import annotations

import socket
import threading
from typing import Any

import pytest
from botocore.exceptions import ClientError

from minewatch.errors import IdentityError
from minewatch.models import SocketEntry, WatchdogConfig


def client_error(operation: str, code: str = "AccessDenied") -> ClientError:
    """Build a botocore ClientError like the real clients raise."""
    return ClientError({"Error": {"Code": code, "Message": "boom"}}, operation)


def listener(port: int, kind: str = "tcp") -> SocketEntry:
    status = "LISTEN" if kind == "tcp" else "NONE"
    return SocketEntry(local_port=port, status=status, kind=kind)


def established(port: int) -> SocketEntry:
    return SocketEntry(local_port=port, status="ESTABLISHED")


# --- Time and socket table ---


class FakeTicker:
    """Records requested sleeps instead of waiting."""

    def __init__(self) -> None:
        self.sleeps: list[float] = []

    @property
    def ticks(self) -> int:
        return len(self.sleeps)

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


class FakeInspector:
    """Socket table that changes as the ticker advances.

    ``schedule`` maps a tick number to the snapshot that becomes visible
    from that tick onwards.
    """

    def __init__(
        self,
        ticker: FakeTicker | None = None,
        schedule: dict[int, list[SocketEntry]] | None = None,
    ) -> None:
        self._ticker = ticker or FakeTicker()
        self._schedule = schedule or {0: []}
        self.calls = 0

    def connections(self) -> list[SocketEntry]:
        self.calls += 1
        visible = [t for t in self._schedule if t <= self._ticker.ticks]
        if not visible:
            return []
        return list(self._schedule[max(visible)])


class FakeProbe:
    """Returns scripted observations, then False forever."""

    def __init__(self, observations: list[bool]) -> None:
        self._observations = list(observations)
        self.editions: list[str] = []

    def is_active(self, edition: str) -> bool:
        self.editions.append(edition)
        if not self._observations:
            return False
        return self._observations.pop(0)


# --- AWS fakes ---


class FakeIdentity:
    def __init__(
        self,
        task_arn: str = "arn:aws:ecs:task/abc",
        ip: str = "203.0.113.10",
        fail: bool = False,
    ) -> None:
        self._task_arn = task_arn
        self._ip = ip
        self._fail = fail

    def task_arn(self) -> str:
        if self._fail:
            raise IdentityError("Failed to get task metadata: connection refused")
        return self._task_arn

    def public_ip(self, cluster: str, task_arn: str) -> str:
        return self._ip


class FakeEcs:
    def __init__(
        self,
        eni: str | None = "eni-123",
        fail_update: bool = False,
        fail_describe: bool = False,
    ) -> None:
        self.eni = eni
        self.fail_update = fail_update
        self.fail_describe = fail_describe
        self.updates: list[dict[str, Any]] = []
        self.describes: list[dict[str, Any]] = []

    def describe_tasks(self, **kwargs: Any) -> dict[str, Any]:
        self.describes.append(kwargs)
        if self.fail_describe:
            raise client_error("DescribeTasks")
        details = [{"name": "subnetId", "value": "subnet-1"}]
        if self.eni is not None:
            details.append({"name": "networkInterfaceId", "value": self.eni})
        attachment = {"type": "ElasticNetworkInterface", "details": details}
        return {"tasks": [{"attachments": [attachment]}]}

    def update_service(self, **kwargs: Any) -> dict[str, Any]:
        self.updates.append(kwargs)
        if self.fail_update:
            raise client_error("UpdateService")
        return {"service": {"desiredCount": kwargs["desiredCount"]}}


class FakeEc2:
    def __init__(self, public_ip: str | None = "203.0.113.10") -> None:
        self.public_ip = public_ip
        self.calls: list[list[str]] = []

    def describe_network_interfaces(self, NetworkInterfaceIds: list[str]) -> dict[str, Any]:
        self.calls.append(NetworkInterfaceIds)
        association = {"PublicIp": self.public_ip} if self.public_ip else {}
        return {"NetworkInterfaces": [{"Association": association}]}


class FakeRoute53:
    """Keeps record sets keyed by (zone, name, type) with UPSERT semantics."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls = 0
        self.records: dict[tuple[str, str, str], dict[str, Any]] = {}

    def change_resource_record_sets(
        self, HostedZoneId: str, ChangeBatch: dict[str, Any]
    ) -> dict[str, Any]:
        self.calls += 1
        if self.fail:
            raise client_error("ChangeResourceRecordSets", "InvalidChangeBatch")
        for change in ChangeBatch["Changes"]:
            assert change["Action"] == "UPSERT"
            rrset = change["ResourceRecordSet"]
            self.records[(HostedZoneId, rrset["Name"], rrset["Type"])] = rrset
        return {"ChangeInfo": {"Status": "PENDING"}}


class FakeSns:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.messages: list[dict[str, str]] = []

    def publish(self, TopicArn: str, Message: str) -> dict[str, str]:
        if self.fail:
            raise client_error("Publish")
        self.messages.append({"TopicArn": TopicArn, "Message": Message})
        return {"MessageId": str(len(self.messages))}


class FakeResponse:
    def __init__(
        self, payload: Any = None, status: int = 200, invalid_json: bool = False
    ) -> None:
        self._payload = payload
        self.status_code = status
        self._invalid_json = invalid_json

    def raise_for_status(self) -> None:
        import requests

        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self) -> Any:
        if self._invalid_json:
            raise ValueError("Expecting value")
        return self._payload


# --- Fixtures ---


@pytest.fixture()
def config() -> WatchdogConfig:
    return WatchdogConfig(
        cluster="minecraft",
        service="minecraft-server",
        server_name="mc.example.com",
        dns_zone="Z123456",
        sns_topic="arn:aws:sns:us-east-1:123:minecraft",
        startup_minutes=2,
        shutdown_minutes=3,
    )


@pytest.fixture()
def udp_server():
    """UDP responder on an ephemeral port.

    Yields a dict with ``host``, ``port``, ``received`` (datagrams seen) and
    ``reply`` (bytes to answer with; None means stay silent).
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(0.2)
    state: dict[str, Any] = {
        "host": "127.0.0.1",
        "port": sock.getsockname()[1],
        "received": [],
        "reply": None,
    }
    stop = threading.Event()

    def serve() -> None:
        while not stop.is_set():
            try:
                data, addr = sock.recvfrom(2048)
            except OSError:
                continue
            state["received"].append(data)
            if state["reply"] is not None:
                sock.sendto(state["reply"], addr)

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    try:
        yield state
    finally:
        stop.set()
        thread.join(timeout=1)
        sock.close()
