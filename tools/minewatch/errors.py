"""Fatal error types raised by the adapters and handled by the controller."""

from __future__ import annotations


class WatchdogError(Exception):
    """Base class for conditions that end the run with exit code 1."""


class IdentityError(WatchdogError):
    """Task metadata or public address could not be resolved."""


class DnsPublishError(WatchdogError):
    """The Route 53 upsert was rejected or could not be sent."""


class EditionDetectionError(WatchdogError):
    """No game server started listening within the detection budget."""


class ScaleError(WatchdogError):
    """The ECS service desired count could not be updated."""


class ClientSetupError(WatchdogError):
    """The AWS clients could not be created from the environment."""
