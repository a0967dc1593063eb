"""Shared fixtures: isolated HOME/environment and fakes for external collaborators."""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from rich.console import Console

from devboot.core.aws import CallerIdentity
from devboot.core.constants import ROLES_ANYWHERE_SECRETS
from devboot.core.exceptions import IdentityError
from devboot.core.reporting import Reporter
from devboot.core.tailscale import DaemonState

_ISOLATED_VARS = (
    "CODESPACES",
    "PROJECT_NAME",
    "AWS_REGION",
    "AWS_PROFILE",
    "AWS_PROFILE_LOCAL",
    "DEVBOOT_CONFIG",
    "DEVBOOT_LOG_LEVEL",
    *ROLES_ANYWHERE_SECRETS,
)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point HOME at a temp dir and clear every variable devboot reads."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for var in _ISOLATED_VARS:
        monkeypatch.delenv(var, raising=False)
    return home


# ---------------------------------------------------------------------------
# Reporter
# ---------------------------------------------------------------------------


class RecordingReporter(Reporter):
    """Reporter writing plain text into a buffer."""

    def __init__(self) -> None:
        self.buffer = io.StringIO()
        super().__init__(Console(file=self.buffer, width=300, color_system=None))

    @property
    def text(self) -> str:
        return self.buffer.getvalue()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


# ---------------------------------------------------------------------------
# AWS fakes
# ---------------------------------------------------------------------------


class FakeIdentity:
    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.calls: list[str | None] = []

    def get_caller_identity(self, profile: str | None = None) -> CallerIdentity:
        self.calls.append(profile)
        if not self.ok:
            raise IdentityError("Unable to locate credentials")
        return CallerIdentity(
            account="123456789012",
            arn="arn:aws:sts::123456789012:assumed-role/devcontainer/session",
            user_id="AROAEXAMPLE:session",
        )


class FakeParameterStore:
    def __init__(self, values: dict[str, str] | None = None) -> None:
        self.values = values or {}
        self.requested: list[str] = []

    def get_parameter(self, name: str, decrypt: bool = True) -> str | None:
        self.requested.append(name)
        return self.values.get(name)


@pytest.fixture
def identity() -> FakeIdentity:
    return FakeIdentity()


@pytest.fixture
def failing_identity() -> FakeIdentity:
    return FakeIdentity(ok=False)


@pytest.fixture
def parameter_store_factory():
    return FakeParameterStore


# ---------------------------------------------------------------------------
# Overlay daemon fake
# ---------------------------------------------------------------------------


class FakeDaemon:
    """
    Scripted overlay daemon.

    ``states`` is consumed one entry per status() call; the last entry
    repeats once the script runs out.
    """

    def __init__(
        self,
        running: bool = False,
        states: list[DaemonState] | None = None,
        join_ok: bool = True,
        address: str = "100.64.0.7",
        exited: bool = False,
        log_lines: list[str] | None = None,
    ) -> None:
        self.running = running
        self.states = list(states or [DaemonState.READY_LOGGED_OUT])
        self.join_ok = join_ok
        self.address = address
        self.exited = exited
        self.log_lines = log_lines or []
        self.started = 0
        self.status_calls = 0
        self.status_timeouts: list[float | None] = []
        self.joined_with: list[str] = []

    def require_tools(self) -> None:
        return None

    def is_daemon_running(self) -> bool:
        return self.running

    def start_daemon(self) -> None:
        self.started += 1

    def has_exited(self) -> bool:
        return self.exited

    def status(self, timeout: float | None = None) -> DaemonState:
        self.status_calls += 1
        self.status_timeouts.append(timeout)
        if len(self.states) > 1:
            return self.states.pop(0)
        return self.states[0]

    def is_connected(self) -> bool:
        if self.joined_with:
            return True
        return self.states[0] is DaemonState.READY_CONNECTED

    def up(self, auth_key: str) -> bool:
        self.joined_with.append(auth_key)
        if self.join_ok:
            self.states = [DaemonState.READY_CONNECTED]
        return self.join_ok

    def ipv4(self) -> str:
        return self.address

    def status_text(self) -> str:
        return "100.64.0.7  devcontainer  user@  linux  -"

    def log_tail(self, lines: int = 10) -> list[str]:
        return self.log_lines[-lines:]


@pytest.fixture
def daemon_factory():
    return FakeDaemon
