"""
devboot CLI entry point.

Commands:
  devboot credentials        - configure AWS credentials for this container
  devboot tailscale          - join the tailnet with the auth key from SSM
  devboot shell-env          - print exports for the persisted AWS profile
  devboot certs generate     - create the Roles Anywhere certificate chain
  devboot deploy             - deploy the bootstrap CloudFormation stack
  devboot doctor             - environment and tool health check
  devboot version            - show version information
"""

from __future__ import annotations

import click
from rich.console import Console

from devboot import __version__

console = Console()
err_console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "--version", "-V", message="devboot %(version)s")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Diagnostic log level (stderr). Overrides DEVBOOT_LOG_LEVEL.",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """devboot - development container bootstrap."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level


# ---------------------------------------------------------------------------
# credentials / tailscale / shell-env
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def credentials(ctx: click.Context) -> None:
    """Configure AWS credentials (Roles Anywhere or host copy)."""
    from devboot.cli._credentials import cmd_credentials

    cmd_credentials(log_level=ctx.obj["log_level"], console=console)


@cli.command()
@click.pass_context
def tailscale(ctx: click.Context) -> None:
    """Connect this container to the tailnet."""
    from devboot.cli._tailscale import cmd_tailscale

    cmd_tailscale(log_level=ctx.obj["log_level"], console=console)


@cli.command("shell-env")
def shell_env() -> None:
    """Print shell exports for the active AWS profile (use with eval)."""
    from devboot.cli._shell_env import cmd_shell_env

    cmd_shell_env()


# ---------------------------------------------------------------------------
# certs
# ---------------------------------------------------------------------------


@cli.group()
def certs() -> None:
    """IAM Roles Anywhere certificate management."""


@certs.command("generate")
@click.option("--directory", default="", help="Output directory for the certificates")
@click.option("--common-name", default="", help="Common name of the end-entity certificate")
@click.option("--validity-days", type=int, default=None, help="Certificate validity in days")
@click.option("--key-size", type=int, default=None, help="RSA key size in bits")
@click.option("--force", is_flag=True, default=False, help="Overwrite existing certificates")
@click.option("--no-input", is_flag=True, default=False, help="Never prompt")
@click.pass_context
def certs_generate(
    ctx: click.Context,
    directory: str,
    common_name: str,
    validity_days: int | None,
    key_size: int | None,
    force: bool,
    no_input: bool,
) -> None:
    """Generate a CA and end-entity certificate for Roles Anywhere."""
    from devboot.cli._certs import cmd_certs_generate

    cmd_certs_generate(
        directory=directory,
        common_name=common_name,
        validity_days=validity_days,
        key_size=key_size,
        force=force,
        no_input=no_input,
        log_level=ctx.obj["log_level"],
        console=console,
    )


# ---------------------------------------------------------------------------
# deploy
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--first-run", is_flag=True, default=False, help="Generate certificates if needed")
@click.option("--region", default="", help="AWS region (default: AWS_REGION or us-west-2)")
@click.option("--project-name", default="", help="Project name override")
@click.option(
    "--environment",
    type=click.Choice(["dev", "staging", "prod"]),
    default=None,
    help="Deployment environment",
)
@click.option("--template", default="", help="Path to the bootstrap template")
@click.option("--certs-dir", default="", help="Directory holding ca-cert.pem")
@click.pass_context
def deploy(
    ctx: click.Context,
    first_run: bool,
    region: str,
    project_name: str,
    environment: str | None,
    template: str,
    certs_dir: str,
) -> None:
    """Deploy or update the bootstrap CloudFormation stack."""
    from devboot.cli._deploy import cmd_deploy

    cmd_deploy(
        first_run=first_run,
        region=region,
        project_name=project_name,
        environment=environment,
        template=template,
        certs_dir=certs_dir,
        log_level=ctx.obj["log_level"],
        console=console,
    )


# ---------------------------------------------------------------------------
# doctor
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--json", "as_json", is_flag=True, default=False)
def doctor(as_json: bool) -> None:
    """Environment and tool health check."""
    from devboot.cli._doctor import cmd_doctor

    cmd_doctor(as_json=as_json, console=console)


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--json", "as_json", is_flag=True, default=False)
def version(as_json: bool) -> None:
    """Show version information."""
    import platform
    import sys as _sys

    if as_json:
        import json

        click.echo(
            json.dumps(
                {
                    "devboot": __version__,
                    "python": _sys.version.split()[0],
                    "platform": _sys.platform,
                    "arch": platform.machine(),
                },
                indent=2,
            )
        )
    else:
        console.print(f"devboot {__version__}")
        console.print(f"Python {_sys.version.split()[0]}")
        console.print(f"Platform: {_sys.platform} {platform.machine()}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
