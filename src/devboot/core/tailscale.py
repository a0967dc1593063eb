"""
Thin wrapper around the ``tailscale`` / ``tailscaled`` binaries.

tailscaled exposes no structured readiness signal to a fresh container, so
readiness is inferred from the text of ``tailscale status``: it exits 0 once
connected, and while logged out it exits non-zero but prints one of
:data:`READINESS_MARKERS`. Anything else means the daemon is not answering
on its socket yet.

The daemon runs with in-memory state and userspace networking, which works
in containers without ``/dev/net/tun``.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from devboot.core.constants import DAEMON_LOG_TAIL_LINES
from devboot.core.exceptions import ToolMissingError

logger = logging.getLogger(__name__)

READINESS_MARKERS = ("Logged out", "stopped", "Health check")

_STATUS_TIMEOUT_SECONDS = 10.0
_UP_TIMEOUT_SECONDS = 120.0


class DaemonState(str, Enum):
    NOT_STARTED = "not-started"
    STARTING = "starting"
    READY_LOGGED_OUT = "ready-logged-out"
    READY_CONNECTED = "ready-connected"
    FAILED = "failed"

    @property
    def ready(self) -> bool:
        return self in (DaemonState.READY_LOGGED_OUT, DaemonState.READY_CONNECTED)


def interpret_status(returncode: int | None, output: str) -> DaemonState:
    """Map one ``tailscale status`` run onto a daemon state."""
    if returncode == 0:
        return DaemonState.READY_CONNECTED
    if any(marker in output for marker in READINESS_MARKERS):
        return DaemonState.READY_LOGGED_OUT
    return DaemonState.STARTING


class TailscaleClient:
    """Start, query and join the local tailscaled."""

    def __init__(
        self,
        socket_path: str,
        log_path: str,
        use_sudo: bool = True,
        runner: Callable[..., subprocess.CompletedProcess[str]] = subprocess.run,
        spawner: Callable[..., subprocess.Popen[bytes]] = subprocess.Popen,
    ) -> None:
        self.socket_path = socket_path
        self.log_path = Path(log_path)
        self.use_sudo = use_sudo and os.geteuid() != 0
        self._run = runner
        self._spawn = spawner
        self._process: subprocess.Popen[bytes] | None = None

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def require_tools(self) -> None:
        required = ["tailscale", "tailscaled"]
        if self.use_sudo:
            required.append("sudo")
        missing = [tool for tool in required if shutil.which(tool) is None]
        if missing:
            raise ToolMissingError(f"Required tool(s) not found on PATH: {', '.join(missing)}")

    def _privileged(self, args: list[str]) -> list[str]:
        return (["sudo"] + args) if self.use_sudo else args

    def _cli(self, *args: str) -> list[str]:
        return ["tailscale", f"--socket={self.socket_path}", *args]

    def _capture(self, args: list[str], timeout: float) -> tuple[int | None, str]:
        try:
            proc = self._run(  # nosec B603
                args,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            logger.info("%s timed out after %.0fs", args[0], timeout)
            return None, ""
        except FileNotFoundError as exc:
            raise ToolMissingError(f"{args[0]} is not installed") from exc
        return proc.returncode, proc.stdout or ""

    # ------------------------------------------------------------------
    # Daemon lifecycle
    # ------------------------------------------------------------------

    def is_daemon_running(self) -> bool:
        try:
            proc = self._run(  # nosec B603 B607
                ["pgrep", "-x", "tailscaled"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        except FileNotFoundError:
            return Path(self.socket_path).exists()
        return proc.returncode == 0

    def start_daemon(self) -> None:
        """Spawn tailscaled detached, logging to :attr:`log_path`."""
        args = self._privileged(
            [
                "tailscaled",
                "--state=mem:",
                "--tun=userspace-networking",
                f"--socket={self.socket_path}",
            ]
        )
        logger.info("Starting %s", " ".join(args))
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_path, "wb") as log:
            self._process = self._spawn(  # nosec B603
                args,
                stdin=subprocess.DEVNULL,
                stdout=log,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )

    def has_exited(self) -> bool:
        """True when a daemon spawned by this client has already died."""
        return self._process is not None and self._process.poll() is not None

    def log_tail(self, lines: int = DAEMON_LOG_TAIL_LINES) -> list[str]:
        try:
            text = self.log_path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return []
        return text.splitlines()[-lines:]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def status(self, timeout: float | None = None) -> DaemonState:
        """One ``tailscale status`` run, bounded by ``timeout`` (capped at 10s)."""
        limit = _STATUS_TIMEOUT_SECONDS
        if timeout is not None:
            limit = min(timeout, limit)
        returncode, output = self._capture(self._cli("status"), limit)
        return interpret_status(returncode, output)

    def is_connected(self) -> bool:
        return self.status() is DaemonState.READY_CONNECTED

    def status_text(self) -> str:
        _, output = self._capture(self._cli("status"), _STATUS_TIMEOUT_SECONDS)
        return output.rstrip()

    def ipv4(self) -> str:
        returncode, output = self._capture(self._cli("ip", "-4"), _STATUS_TIMEOUT_SECONDS)
        if returncode != 0:
            return ""
        for line in output.splitlines():
            if line.strip():
                return line.strip()
        return ""

    # ------------------------------------------------------------------
    # Join
    # ------------------------------------------------------------------

    def up(self, auth_key: str) -> bool:
        """Join the tailnet once. The key is passed as an argument, never logged."""
        returncode, output = self._capture(
            self._privileged(self._cli("up", f"--authkey={auth_key}")), _UP_TIMEOUT_SECONDS
        )
        if returncode != 0:
            logger.info("tailscale up failed (exit %s): %s", returncode, output.strip())
        return returncode == 0
