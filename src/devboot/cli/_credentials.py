"""devboot credentials - configure AWS credentials at container start."""

from __future__ import annotations

from rich.console import Console

from devboot.cli._common import load_or_exit


def cmd_credentials(log_level: str | None, console: Console) -> None:
    """Run the credential bootstrapper. Always exits 0 once config is valid."""
    from devboot.core.aws import StsIdentityProvider
    from devboot.core.credentials import CredentialBootstrapper
    from devboot.core.reporting import Reporter

    config = load_or_exit(log_level, console)
    reporter = Reporter(console)
    identity = StsIdentityProvider(region=config.aws.region)
    CredentialBootstrapper(config, identity, reporter).run()
