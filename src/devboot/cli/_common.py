"""Shared helpers for CLI commands."""

from __future__ import annotations

import sys

from rich.console import Console
from rich.markup import escape

from devboot.core.config import DevbootConfig
from devboot.core.constants import ExitCode


def load_or_exit(log_level: str | None, console: Console) -> DevbootConfig:
    """Load config and configure logging; exit 1 on an invalid config."""
    from devboot.core.config import load_config
    from devboot.core.exceptions import ConfigError
    from devboot.core.reporting import configure_logging

    try:
        config = load_config()
    except ConfigError as exc:
        console.print(f"[red]Config error:[/red] {escape(str(exc))}")
        sys.exit(ExitCode.ERROR)

    configure_logging(log_level or config.logging.level)
    return config
