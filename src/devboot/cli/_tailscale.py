"""devboot tailscale - join the tailnet using the auth key stored in SSM."""

from __future__ import annotations

import sys

from rich.console import Console

from devboot.cli._common import load_or_exit
from devboot.core.constants import ExitCode


def cmd_tailscale(log_level: str | None, console: Console) -> None:
    from devboot.core.aws import SsmParameterStore, StsIdentityProvider
    from devboot.core.config import load_active_profile
    from devboot.core.connector import ServiceConnector
    from devboot.core.exceptions import ConfigError, DaemonStartError, DevbootError
    from devboot.core.reporting import Reporter
    from devboot.core.tailscale import TailscaleClient

    config = load_or_exit(log_level, console)
    reporter = Reporter(console)

    try:
        profile = load_active_profile()
    except ConfigError as exc:
        reporter.warning(f"Ignoring unreadable session state: {exc}")
        profile = None

    region = config.aws.region_for_connector()
    ts = config.tailscale
    connector = ServiceConnector(
        config=config,
        identity=StsIdentityProvider(region=region),
        parameters=SsmParameterStore(region=region, profile=profile),
        daemon=TailscaleClient(ts.socket_path, ts.log_path, use_sudo=ts.use_sudo),
        reporter=reporter,
        profile=profile,
    )

    try:
        connector.run()
    except DaemonStartError as exc:
        reporter.error(str(exc))
        for line in exc.log_tail:
            reporter.detail(line)
        sys.exit(ExitCode.ERROR)
    except DevbootError as exc:
        reporter.error(str(exc))
        sys.exit(ExitCode.ERROR)

    reporter.info("Tailscale setup complete.")
