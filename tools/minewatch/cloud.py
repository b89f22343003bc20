"""AWS adapters: task identity, Route 53 publishing, and ECS scaling.

Each adapter takes already-built boto3 clients so tests can pass fakes.
Failures are wrapped in the fatal error types from minewatch.errors.
"""

from __future__ import annotations

from typing import Any

import boto3
import requests
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from minewatch.errors import (
    ClientSetupError,
    DnsPublishError,
    IdentityError,
    ScaleError,
)

logger = structlog.get_logger(__name__)

METADATA_ENV = "ECS_CONTAINER_METADATA_URI_V4"
METADATA_TIMEOUT = 5.0
DNS_TTL = 30

AWS_ERRORS = (BotoCoreError, ClientError)


def build_clients(region: str | None = None) -> dict[str, Any]:
    """Create the boto3 clients the sidecar talks to.

    An empty region falls back to the botocore lookup chain. A missing or
    malformed region raises ClientSetupError.
    """
    try:
        session = boto3.session.Session(region_name=region or None)
        return {
            "ecs": session.client("ecs"),
            "ec2": session.client("ec2"),
            "route53": session.client("route53"),
            "sns": session.client("sns"),
        }
    except (BotoCoreError, ValueError) as exc:
        raise ClientSetupError(f"Failed to load AWS configuration: {exc}") from exc


# ---------------------------------------------------------------------------
# Self identity
# ---------------------------------------------------------------------------


class TaskIdentityResolver:
    """Finds this task's ARN and the public IP of its network interface."""

    def __init__(self, ecs: Any, ec2: Any, metadata_uri: str | None) -> None:
        self._ecs = ecs
        self._ec2 = ec2
        self._metadata_uri = metadata_uri

    def task_arn(self) -> str:
        """Read the task ARN from the container metadata endpoint."""
        if not self._metadata_uri:
            raise IdentityError(f"{METADATA_ENV} is not set")
        try:
            resp = requests.get(f"{self._metadata_uri}/task", timeout=METADATA_TIMEOUT)
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as exc:
            raise IdentityError(f"Failed to get task metadata: {exc}") from exc
        except ValueError as exc:
            raise IdentityError(f"Failed to parse task metadata: {exc}") from exc

        task_arn = payload.get("TaskARN") if isinstance(payload, dict) else None
        if not isinstance(task_arn, str) or not task_arn:
            raise IdentityError("Invalid task ARN received")
        return task_arn

    def public_ip(self, cluster: str, task_arn: str) -> str:
        """Resolve the public IPv4 address of the task's network interface."""
        try:
            resp = self._ecs.describe_tasks(cluster=cluster, tasks=[task_arn])
        except AWS_ERRORS as exc:
            raise IdentityError(f"Failed to describe ECS task: {exc}") from exc

        tasks = resp.get("tasks", [])
        if not tasks:
            raise IdentityError(f"ECS task not found: {task_arn}")
        eni = _find_eni(tasks[0])
        if eni is None:
            raise IdentityError("Task has no networkInterfaceId attachment")

        try:
            resp = self._ec2.describe_network_interfaces(NetworkInterfaceIds=[eni])
        except AWS_ERRORS as exc:
            raise IdentityError(f"Failed to describe network interfaces: {exc}") from exc

        interfaces = resp.get("NetworkInterfaces", [])
        address = interfaces[0].get("Association", {}).get("PublicIp") if interfaces else None
        if not address:
            raise IdentityError(f"No public IP associated with {eni}")
        return address


def _find_eni(task: dict[str, Any]) -> str | None:
    for attachment in task.get("attachments", []):
        for detail in attachment.get("details", []):
            if detail.get("name") == "networkInterfaceId":
                return detail.get("value")
    return None


# ---------------------------------------------------------------------------
# DNS
# ---------------------------------------------------------------------------


class DnsPublisher:
    """UPSERTs an A record so clients can find the current task."""

    def __init__(self, route53: Any, ttl: int = DNS_TTL) -> None:
        self._route53 = route53
        self._ttl = ttl

    def upsert(self, zone_id: str, name: str, address: str) -> None:
        """Point the A record ``name`` at ``address``."""
        try:
            self._route53.change_resource_record_sets(
                HostedZoneId=zone_id,
                ChangeBatch={
                    "Changes": [
                        {
                            "Action": "UPSERT",
                            "ResourceRecordSet": {
                                "Name": name,
                                "Type": "A",
                                "TTL": self._ttl,
                                "ResourceRecords": [{"Value": address}],
                            },
                        }
                    ]
                },
            )
        except AWS_ERRORS as exc:
            raise DnsPublishError(f"Failed to update DNS record: {exc}") from exc
        logger.info("DNS record updated", server_name=name, ip=address)


# ---------------------------------------------------------------------------
# Scaling
# ---------------------------------------------------------------------------


class ServiceScaler:
    """Sets the ECS service desired count with a single unconditional call."""

    def __init__(self, ecs: Any) -> None:
        self._ecs = ecs

    def set_desired_count(self, cluster: str, service: str, count: int) -> None:
        if count not in (0, 1):
            raise ValueError(f"Desired count must be 0 or 1, got {count}")
        try:
            self._ecs.update_service(
                cluster=cluster, service=service, desiredCount=count
            )
        except AWS_ERRORS as exc:
            raise ScaleError(
                f"Failed to set service desired count to {count}: {exc}"
            ) from exc
        logger.info("Service desired count updated", service=service, count=count)
