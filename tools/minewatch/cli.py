"""Main CLI entrypoint for the minewatch sidecar.

Provides the ``run`` command that drives the lifecycle controller, plus
diagnostic subcommands for the Bedrock ping, the local socket table, and a
manual desired-count update.
"""

from __future__ import annotations

import os
import sys

import click
import structlog

from minewatch import __version__
from minewatch.log import configure_logging


@click.group()
@click.version_option(version=__version__, prog_name="minewatch")
@click.option(
    "--log-format",
    type=click.Choice(["json", "console"]),
    default="json",
    envvar="LOG_FORMAT",
    help="Log output format.",
)
@click.option("--log-level", default="INFO", envvar="LOG_LEVEL", help="Log level.")
def main(log_format: str, log_level: str) -> None:
    """Minecraft on-demand server watchdog."""
    configure_logging(log_level, log_format)


@main.command()
@click.option("--cluster", required=True, envvar="CLUSTER", help="ECS cluster name.")
@click.option("--service", required=True, envvar="SERVICE", help="ECS service name.")
@click.option(
    "--server-name", required=True, envvar="SERVERNAME", help="Full A record in Route 53."
)
@click.option(
    "--dns-zone", required=True, envvar="DNSZONE", help="Route 53 hosted zone ID."
)
@click.option(
    "--sns-topic", default=None, envvar="SNSTOPIC", help="SNS topic for notifications."
)
@click.option(
    "--startup-min",
    default=10,
    type=click.IntRange(min=1),
    envvar="STARTUPMIN",
    help="Minutes to wait for the first connection.",
)
@click.option(
    "--shutdown-min",
    default=20,
    type=click.IntRange(min=1),
    envvar="SHUTDOWNMIN",
    help="Idle minutes tolerated before shutdown.",
)
@click.option("--region", default=None, envvar="AWS_REGION", help="AWS region.")
def run(
    cluster: str,
    service: str,
    server_name: str,
    dns_zone: str,
    sns_topic: str | None,
    startup_min: int,
    shutdown_min: int,
    region: str | None,
) -> None:
    """Run the sidecar until the server is idle, then scale it to zero."""
    from minewatch.activity import ActivityProbe
    from minewatch.cloud import (
        METADATA_ENV,
        DnsPublisher,
        ServiceScaler,
        TaskIdentityResolver,
        build_clients,
    )
    from minewatch.connections import PsutilInspector
    from minewatch.controller import LifecycleController
    from minewatch.errors import WatchdogError
    from minewatch.models import WatchdogConfig
    from minewatch.notify import Notifier

    config = WatchdogConfig(
        cluster=cluster,
        service=service,
        server_name=server_name,
        dns_zone=dns_zone,
        sns_topic=sns_topic,
        startup_minutes=startup_min,
        shutdown_minutes=shutdown_min,
    )
    log = structlog.get_logger(__name__)
    try:
        clients = build_clients(region or None)
    except WatchdogError as exc:
        log.error("Watchdog failed", error=str(exc))
        sys.exit(1)
    inspector = PsutilInspector()

    controller = LifecycleController(
        config,
        identity=TaskIdentityResolver(
            clients["ecs"], clients["ec2"], os.environ.get(METADATA_ENV)
        ),
        dns=DnsPublisher(clients["route53"]),
        inspector=inspector,
        probe=ActivityProbe(inspector, ping_timeout=config.ping_timeout_seconds),
        notifier=Notifier(clients["sns"], config.sns_topic),
        scaler=ServiceScaler(clients["ecs"]),
    )
    result = controller.run()
    log.info(
        "Watchdog finished", exit_code=result.exit_code, reason=result.reason
    )
    sys.exit(result.exit_code)


@main.command()
@click.option("--host", default="127.0.0.1", help="Bedrock server host.")
@click.option("--port", default=19132, type=int, help="Bedrock server UDP port.")
@click.option("--timeout", default=1.0, type=float, help="Read timeout (seconds).")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format.",
)
def ping(host: str, port: int, timeout: float, output_format: str) -> None:
    """Send one Bedrock unconnected ping and show the pong."""
    from minewatch.bedrock_ping import parse_pong, send_ping

    try:
        reply = send_ping(host, port, timeout)
    except OSError as exc:
        raise click.ClickException(f"No response from {host}:{port}: {exc}")

    info = parse_pong(reply)
    if info is None:
        raise click.ClickException(f"Malformed pong ({len(reply)} bytes)")

    if output_format == "json":
        click.echo(info.model_dump_json(indent=2))
    else:
        players = (
            f"{info.players_online}/{info.players_max}"
            if info.players_online is not None
            else "unknown"
        )
        click.echo(f"Edition: {info.edition}")
        click.echo(f"MOTD:    {info.motd}")
        click.echo(f"Version: {info.version} (protocol {info.protocol})")
        click.echo(f"Players: {players}")


@main.command()
@click.option("--port", default=25565, type=int, help="Local port to inspect.")
def connections(port: int) -> None:
    """Show listener and established-connection state for a local port."""
    from minewatch.connections import PsutilInspector, count_established, is_listening

    inspector = PsutilInspector()
    listening = "yes" if is_listening(inspector, port) else "no"
    click.echo(f"Port:        {port}")
    click.echo(f"Listening:   {listening}")
    click.echo(f"Established: {count_established(inspector, port)}")


@main.command()
@click.option("--cluster", required=True, envvar="CLUSTER", help="ECS cluster name.")
@click.option("--service", required=True, envvar="SERVICE", help="ECS service name.")
@click.option(
    "--count", required=True, type=click.IntRange(0, 1), help="Desired count (0 or 1)."
)
@click.option("--region", default=None, envvar="AWS_REGION", help="AWS region.")
def scale(cluster: str, service: str, count: int, region: str | None) -> None:
    """Set the ECS service desired count."""
    from minewatch.cloud import ServiceScaler, build_clients
    from minewatch.errors import ScaleError

    scaler = ServiceScaler(build_clients(region)["ecs"])
    try:
        scaler.set_desired_count(cluster, service, count)
    except ScaleError as exc:
        raise click.ClickException(str(exc))
    click.echo(f"Set {service} desired count to {count}")


if __name__ == "__main__":
    main()
