"""
Severity-tagged console output and logging setup.

Every user-facing diagnostic goes through a :class:`Reporter`, which prints
one line per message prefixed with ``[INFO]``, ``[SUCCESS]``, ``[WARNING]``
or ``[ERROR]``. Message text is escaped so that bracketed content (ARNs,
``aws`` command lines) is printed verbatim rather than read as Rich markup.
"""

from __future__ import annotations

import logging
import sys

from rich.console import Console
from rich.markup import escape

logger = logging.getLogger(__name__)

_TAGS = {
    "info": ("INFO", "blue"),
    "success": ("SUCCESS", "green"),
    "warning": ("WARNING", "yellow"),
    "error": ("ERROR", "red"),
}


class Reporter:
    """Prints tagged diagnostics to a Rich console."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def _emit(self, severity: str, message: str) -> None:
        tag, colour = _TAGS[severity]
        self.console.print(f"[{colour}]\\[{tag}][/{colour}] {escape(message)}")
        logger.debug("%s: %s", tag, message)

    def info(self, message: str) -> None:
        self._emit("info", message)

    def success(self, message: str) -> None:
        self._emit("success", message)

    def warning(self, message: str) -> None:
        self._emit("warning", message)

    def error(self, message: str) -> None:
        self._emit("error", message)

    def detail(self, message: str = "") -> None:
        """Print an untagged continuation line (command examples, lists)."""
        self.console.print(escape(message))


def configure_logging(level: str = "WARNING") -> None:
    """Send stdlib logging to stderr so it never mixes with command output."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
        force=True,
    )
