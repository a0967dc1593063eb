"""devboot shell-env - exports for the persisted AWS profile.

Intended for shell startup files::

    eval "$(devboot shell-env)"
"""

from __future__ import annotations

import shlex
import sys

import click

from devboot.core.constants import ExitCode


def cmd_shell_env() -> None:
    from devboot.core.config import load_active_profile
    from devboot.core.exceptions import ConfigError

    try:
        profile = load_active_profile()
    except ConfigError as exc:
        click.echo(f"# devboot: {exc}", err=True)
        sys.exit(ExitCode.ERROR)

    if profile:
        click.echo(f"export AWS_PROFILE={shlex.quote(profile)}")
