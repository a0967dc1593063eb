"""devboot doctor - environment and tool health check."""

from __future__ import annotations

import json
import os
import shutil
import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape


def _tool_check(name: str, required_for: str) -> dict[str, str]:
    path = shutil.which(name)
    return {
        "name": f"{name} binary",
        "status": "pass" if path else "warn",
        "detail": path or f"not found (needed for {required_for})",
    }


def cmd_doctor(as_json: bool, console: Console) -> None:
    from devboot.core.aws import StsIdentityProvider
    from devboot.core.config import load_active_profile, load_config
    from devboot.core.credentials import CredentialPaths
    from devboot.core.environment import SecretBundle, classify_environment
    from devboot.core.exceptions import ConfigError, IdentityError

    checks: list[dict[str, str]] = [
        {"name": "Python version", "status": "pass", "detail": sys.version.split()[0]},
    ]

    try:
        config = load_config()
        checks.append({"name": "Config", "status": "pass", "detail": config.project_name})
    except ConfigError as exc:
        config = None
        checks.append({"name": "Config", "status": "fail", "detail": str(exc)})

    paths = CredentialPaths.for_home(Path.home())
    environment = classify_environment(os.environ, paths.host_dir.is_dir())
    checks.append({"name": "Environment", "status": "pass", "detail": environment.value})

    bundle = SecretBundle.from_env(os.environ)
    missing = bundle.missing()
    checks.append(
        {
            "name": "Roles Anywhere secrets",
            "status": "pass" if not missing else "warn",
            "detail": "all set" if not missing else "missing: " + ", ".join(missing),
        }
    )

    checks.append(_tool_check("aws_signing_helper", "Roles Anywhere"))
    checks.append(_tool_check("tailscale", "the overlay network"))
    checks.append(_tool_check("tailscaled", "the overlay network"))

    try:
        profile = load_active_profile()
    except ConfigError:
        profile = None
    region = config.aws.region if config else None
    try:
        identity = StsIdentityProvider(region=region).get_caller_identity(profile=profile)
        checks.append({"name": "AWS identity", "status": "pass", "detail": identity.arn})
    except IdentityError as exc:
        checks.append({"name": "AWS identity", "status": "warn", "detail": str(exc)})

    all_pass = all(c["status"] != "fail" for c in checks)

    if as_json:
        print(json.dumps({"checks": checks, "all_pass": all_pass}, indent=2))
        return

    console.print("[bold]devboot doctor[/bold]\n")
    icons = {
        "pass": "[green]PASS[/green]",
        "warn": "[yellow]WARN[/yellow]",
        "fail": "[red]FAIL[/red]",
    }
    for c in checks:
        console.print(f"  {icons[c['status']]}  {c['name']}: {escape(c['detail'])}")

    console.print()
    if all_pass:
        console.print("[green]No blocking problems found.[/green]")
    else:
        console.print("[red]Some checks failed.[/red]")
