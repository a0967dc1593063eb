"""
Overlay network connector.

Brings the container onto the tailnet using an auth key kept in SSM:

    no AWS credentials / no key / placeholder / malformed key  -> skip (exit 0)
    daemon not running -> start -> poll for readiness (bounded)
    not connected      -> join once with the key
    connected          -> verify an IPv4 address was assigned

The overlay network is optional, so everything up to the daemon start is a
graceful skip. Once a usable key exists, a daemon that never becomes ready,
a rejected join, or a missing address is fatal and raised as a
:class:`~devboot.core.exceptions.ConnectorError`.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from devboot.core.aws import IdentityProvider, ParameterStore
from devboot.core.config import DevbootConfig
from devboot.core.constants import (
    PLACEHOLDER_VALUE,
    TAILSCALE_AUTH_KEY_PARAMETER,
    TAILSCALE_KEY_PREFIX,
)
from devboot.core.exceptions import (
    ConnectionVerifyError,
    DaemonStartError,
    IdentityError,
    JoinError,
)
from devboot.core.polling import Ready, poll_until
from devboot.core.reporting import Reporter
from devboot.core.tailscale import DaemonState

logger = logging.getLogger(__name__)


class OverlayDaemon(Protocol):
    def require_tools(self) -> None: ...
    def is_daemon_running(self) -> bool: ...
    def start_daemon(self) -> None: ...
    def has_exited(self) -> bool: ...
    def status(self, timeout: float | None = None) -> DaemonState: ...
    def is_connected(self) -> bool: ...
    def up(self, auth_key: str) -> bool: ...
    def ipv4(self) -> str: ...
    def status_text(self) -> str: ...
    def log_tail(self, lines: int = ...) -> list[str]: ...


# ---------------------------------------------------------------------------
# Auth key checks
# ---------------------------------------------------------------------------


class TokenCheck(str, Enum):
    VALID = "valid"
    PLACEHOLDER = "placeholder"
    MALFORMED = "malformed"


def check_auth_key(
    value: str,
    placeholder: str = PLACEHOLDER_VALUE,
    prefix: str = TAILSCALE_KEY_PREFIX,
    require_prefix: bool = True,
) -> TokenCheck:
    """Placeholder is always rejected; the prefix check can be switched off."""
    value = value.strip()
    if value == placeholder:
        return TokenCheck.PLACEHOLDER
    if not value:
        return TokenCheck.MALFORMED
    if require_prefix and not value.startswith(prefix):
        return TokenCheck.MALFORMED
    return TokenCheck.VALID


def auth_key_parameter_name(project_name: str) -> str:
    return TAILSCALE_AUTH_KEY_PARAMETER.format(project_name=project_name)


# ---------------------------------------------------------------------------
# Connector
# ---------------------------------------------------------------------------


class ConnectOutcome(str, Enum):
    CONNECTED = "connected"
    SKIPPED = "skipped"


class SkipReason(str, Enum):
    NO_CREDENTIALS = "no-credentials"
    FETCH_FAILED = "fetch-failed"
    PLACEHOLDER = "placeholder"
    MALFORMED_KEY = "malformed-key"


@dataclass(frozen=True)
class ConnectResult:
    outcome: ConnectOutcome
    address: str = ""
    status: str = ""
    reason: SkipReason | None = None


class ServiceConnector:
    """
    Join the overlay network once per container start.

    Lifecycle::

        result = ServiceConnector(config, identity, parameters, daemon, reporter).run()
    """

    def __init__(
        self,
        config: DevbootConfig,
        identity: IdentityProvider,
        parameters: ParameterStore,
        daemon: OverlayDaemon,
        reporter: Reporter,
        sleep: Callable[[float], None] = time.sleep,
        profile: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._identity = identity
        self._parameters = parameters
        self._daemon = daemon
        self._reporter = reporter
        self._sleep = sleep
        self._profile = profile
        self._clock = clock
        self._deadline = 0.0

    def run(self) -> ConnectResult:
        self._reporter.info("Setting up Tailscale...")

        key_or_skip = self._fetch_auth_key()
        if isinstance(key_or_skip, ConnectResult):
            self._reporter.warning("Skipping Tailscale setup.")
            return key_or_skip

        self._daemon.require_tools()
        self._ensure_daemon()
        self._join(key_or_skip)
        return self._verify()

    # ------------------------------------------------------------------
    # Auth key
    # ------------------------------------------------------------------

    def _fetch_auth_key(self) -> str | ConnectResult:
        r = self._reporter
        try:
            self._identity.get_caller_identity(profile=self._profile)
        except IdentityError as exc:
            logger.info("No usable AWS credentials: %s", exc)
            r.warning("AWS credentials not available.")
            r.warning("Run 'devboot credentials' first, then re-run this command.")
            return ConnectResult(ConnectOutcome.SKIPPED, reason=SkipReason.NO_CREDENTIALS)

        name = auth_key_parameter_name(self._config.project_name)
        region = self._config.aws.region_for_connector()
        r.info("Fetching Tailscale auth key from SSM Parameter Store...")
        value = self._parameters.get_parameter(name, decrypt=True)
        if value is None:
            r.warning("Could not fetch Tailscale auth key from SSM.")
            r.warning(f"Parameter: {name}")
            return ConnectResult(ConnectOutcome.SKIPPED, reason=SkipReason.FETCH_FAILED)

        ts = self._config.tailscale
        check = check_auth_key(
            value,
            prefix=ts.key_prefix,
            require_prefix=ts.require_key_prefix,
        )
        if check is TokenCheck.PLACEHOLDER:
            r.warning("Tailscale auth key has not been configured.")
            r.warning("To enable Tailscale, update the SSM parameter:")
            r.detail("  aws ssm put-parameter \\")
            r.detail(f"    --name '{name}' \\")
            r.detail(f"    --value '{ts.key_prefix}auth-xxxxx' \\")
            r.detail("    --overwrite \\")
            r.detail(f"    --region {region}")
            return ConnectResult(ConnectOutcome.SKIPPED, reason=SkipReason.PLACEHOLDER)
        if check is TokenCheck.MALFORMED:
            r.warning(
                "Tailscale auth key does not appear to be valid "
                f"(should start with '{ts.key_prefix}')."
            )
            return ConnectResult(ConnectOutcome.SKIPPED, reason=SkipReason.MALFORMED_KEY)

        r.success("Auth key retrieved from SSM Parameter Store")
        return value.strip()

    # ------------------------------------------------------------------
    # Daemon
    # ------------------------------------------------------------------

    def _ensure_daemon(self) -> DaemonState:
        """
        Start tailscaled if needed and wait until it answers on its socket.

        An already running daemon goes through the same readiness poll, which
        returns on the first probe when it is ready. The whole wait, including
        blocking ``status`` calls, is bounded by ``max_attempts * interval``.
        """
        r = self._reporter
        r.info("Starting tailscaled daemon...")
        already_running = self._daemon.is_daemon_running()
        if already_running:
            r.info("tailscaled is already running")
        else:
            self._daemon.start_daemon()

        ts = self._config.tailscale
        self._deadline = self._clock() + ts.max_attempts * ts.interval_seconds
        result = poll_until(
            self._probe,
            max_attempts=ts.max_attempts,
            interval=ts.interval_seconds,
            sleep=self._sleep,
            deadline=self._deadline,
            clock=self._clock,
        )
        if isinstance(result, Ready) and result.state.ready:
            logger.info("tailscaled ready after %d probe(s)", result.attempts)
            if already_running:
                r.success("tailscaled daemon is ready")
            elif result.state is DaemonState.READY_CONNECTED:
                r.success("tailscaled daemon started (already connected)")
            else:
                r.success("tailscaled daemon started")
            return result.state

        tail = self._daemon.log_tail()
        if isinstance(result, Ready):
            message = "tailscaled daemon exited during startup"
        elif already_running:
            message = "tailscaled daemon did not become ready within timeout"
        else:
            message = "tailscaled daemon failed to start within timeout"
        raise DaemonStartError(message, log_tail=tail)

    def _probe(self) -> DaemonState | None:
        remaining = max(self._deadline - self._clock(), 0.0)
        state = self._daemon.status(timeout=remaining)
        if state.ready:
            return state
        if self._daemon.has_exited():
            return DaemonState.FAILED
        return None

    # ------------------------------------------------------------------
    # Join + verify
    # ------------------------------------------------------------------

    def _join(self, auth_key: str) -> None:
        r = self._reporter
        r.info("Connecting to Tailscale network...")
        if self._daemon.is_connected():
            r.info("Already connected to Tailscale")
            return
        if not self._daemon.up(auth_key):
            raise JoinError(
                "Failed to connect to Tailscale network. "
                "Check that your auth key is valid and has not expired."
            )
        r.success("Connected to Tailscale network")

    def _verify(self) -> ConnectResult:
        r = self._reporter
        r.info("Verifying Tailscale connection...")
        address = self._daemon.ipv4()
        if not address:
            raise ConnectionVerifyError("Could not verify Tailscale connection - no IP assigned")
        status = self._daemon.status_text()
        r.success("Tailscale connected successfully!")
        r.info(f"Tailscale IPv4: {address}")
        if status:
            r.info("Tailscale status:")
            r.detail(status)
        return ConnectResult(ConnectOutcome.CONNECTED, address=address, status=status)
