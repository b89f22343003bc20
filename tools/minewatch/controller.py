"""Lifecycle controller for the idle-shutdown sidecar.

Sequence, one state at a time:

    initializing → resolving → publishing_address → detecting_edition
      → awaiting_first_connection → monitoring → shutting_down → terminated

Fatal conditions surface as WatchdogError subclasses from the adapters and
are converted into a RunResult with exit code 1 here. Nothing in this module
exits the process.
"""

from __future__ import annotations

from collections import deque

import structlog

from minewatch.activity import ActivityProbe, detect_edition
from minewatch.clock import Ticker
from minewatch.cloud import DnsPublisher, ServiceScaler, TaskIdentityResolver
from minewatch.connections import ConnectionInspector
from minewatch.errors import WatchdogError
from minewatch.models import (
    Edition,
    LifecycleState,
    RunResult,
    Transition,
    WatchdogConfig,
)
from minewatch.notify import Notifier, shutdown_message, startup_message

logger = structlog.get_logger(__name__)

IDLE_TIMEOUT = "idle_timeout"
NO_INITIAL_CONNECTION = "no_initial_connection"
IDLE_HISTORY_LIMIT = 1440


# ---------------------------------------------------------------------------
# Pure decision helpers
# ---------------------------------------------------------------------------


def next_idle_count(counter: int, active: bool) -> int:
    """Activity resets the counter; idleness advances it by one."""
    return 0 if active else counter + 1


def idle_window_exceeded(counter: int, idle_window: int) -> bool:
    """Shutdown is due only once the counter is strictly past the window."""
    return counter > idle_window


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class LifecycleController:
    """Owns the lifecycle state and the idle counter for one run."""

    def __init__(
        self,
        config: WatchdogConfig,
        identity: TaskIdentityResolver,
        dns: DnsPublisher,
        inspector: ConnectionInspector,
        probe: ActivityProbe,
        notifier: Notifier,
        scaler: ServiceScaler,
        ticker: Ticker | None = None,
    ) -> None:
        self.config = config
        self._identity = identity
        self._dns = dns
        self._inspector = inspector
        self._probe = probe
        self._notifier = notifier
        self._scaler = scaler
        self._ticker = ticker or Ticker()

        self.state: LifecycleState = "initializing"
        self.edition: Edition = "unresolved"
        self.public_ip: str | None = None
        self.idle_counter = 0
        self.idle_history: deque[int] = deque(maxlen=IDLE_HISTORY_LIMIT)
        self.transitions: list[Transition] = [Transition(state="initializing")]

    def _enter(self, state: LifecycleState, detail: str = "") -> None:
        self.state = state
        self.transitions.append(Transition(state=state, detail=detail))
        logger.info("State transition", state=state, detail=detail or None)

    def _result(self, exit_code: int, reason: str) -> RunResult:
        return RunResult(
            exit_code=exit_code,
            state=self.state,
            reason=reason,
            edition=self.edition,
            public_ip=self.public_ip,
            transitions=list(self.transitions),
        )

    # -- entry point -------------------------------------------------------

    def run(self) -> RunResult:
        """Drive the full lifecycle and report how it ended."""
        try:
            reason = self._run()
        except WatchdogError as exc:
            logger.error(
                "Fatal error, terminating",
                error=str(exc),
                error_type=type(exc).__name__,
                state=self.state,
            )
            self._enter("terminated", str(exc))
            return self._result(1, str(exc))

        self._enter("terminated", reason)
        return self._result(0, reason)

    def _run(self) -> str:
        self._enter("resolving")
        task_arn = self._identity.task_arn()
        self.public_ip = self._identity.public_ip(self.config.cluster, task_arn)
        logger.info("Resolved task identity", task_arn=task_arn, ip=self.public_ip)

        self._enter("publishing_address")
        self._dns.upsert(self.config.dns_zone, self.config.server_name, self.public_ip)

        self._enter("detecting_edition")
        self.edition = detect_edition(
            self._inspector,
            self._ticker,
            self.config.detect_budget_ticks,
            self.config.detect_interval_seconds,
        )
        self._notifier.publish(
            startup_message(self.config, self.edition, self.public_ip)
        )

        self._enter("awaiting_first_connection")
        if self.await_first_connection():
            self._enter("monitoring")
            self.monitor()
            reason = IDLE_TIMEOUT
        else:
            logger.info(
                "Startup window exceeded without a connection",
                minutes=self.config.startup_minutes,
            )
            reason = NO_INITIAL_CONNECTION

        self._enter("shutting_down", reason)
        self.shutdown()
        return reason

    # -- polling phases ----------------------------------------------------

    def _observe(self) -> bool:
        if self.edition == "unresolved":
            return False
        return self._probe.is_active(self.edition)

    def await_first_connection(self) -> bool:
        """Poll up to startup_minutes times; True on the first active poll."""
        window = self.config.startup_minutes
        for attempt in range(1, window + 1):
            if self._observe():
                logger.info("Initial connection established", poll=attempt)
                return True
            logger.info("Waiting for connection", poll=attempt, of=window)
            if attempt < window:
                self._ticker.sleep(self.config.check_interval_seconds)
        return False

    def monitor(self) -> None:
        """Return once the idle counter is past the idle window."""
        window = self.config.shutdown_minutes
        self.idle_counter = 0
        while True:
            active = self._observe()
            self.idle_counter = next_idle_count(self.idle_counter, active)
            self.idle_history.append(self.idle_counter)
            if active:
                logger.info("Active connections detected, counter reset")
            else:
                logger.info("No active connections", idle=self.idle_counter, of=window)
            if idle_window_exceeded(self.idle_counter, window):
                logger.info("Idle window elapsed", minutes=window)
                return
            self._ticker.sleep(self.config.check_interval_seconds)

    def shutdown(self) -> None:
        """Notify, then scale the service to zero. Scaling failure is fatal."""
        self._notifier.publish(shutdown_message(self.config))
        self._scaler.set_desired_count(self.config.cluster, self.config.service, 0)
        logger.info("Service shutdown initiated")
