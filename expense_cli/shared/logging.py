"""Console logging for the parse and import commands.

Log lines go to stderr so stdout stays clean for JSON payloads and tables.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from rich.console import Console
from rich.theme import Theme

LEVEL_STYLES = {
    "debug": "dim",
    "info": "cyan",
    "success": "bold green",
    "warning": "yellow",
}


def _make_console(*, stderr: bool) -> Console:
    # Without highlighting, merchant names and amounts print verbatim under FORCE_COLOR.
    return Console(stderr=stderr, theme=Theme(LEVEL_STYLES), highlight=False)


_OUTPUT_CONSOLE = _make_console(stderr=False)
_LOG_CONSOLE = _make_console(stderr=True)


@dataclass(slots=True)
class Logger:
    """Levelled messages on ``log``; rendered reports on ``output``."""

    verbose: bool = False
    output: Console = field(default_factory=lambda: _OUTPUT_CONSOLE, repr=False)
    log: Console = field(default_factory=lambda: _LOG_CONSOLE, repr=False)

    def _emit(self, level: str, message: str) -> None:
        self.log.print(message, style=level, markup=False)

    def debug(self, message: str) -> None:
        if self.verbose:
            self._emit("debug", message)

    def info(self, message: str) -> None:
        self._emit("info", message)

    def success(self, message: str) -> None:
        self._emit("success", message)

    def warning(self, message: str) -> None:
        self._emit("warning", message)


def get_logger(verbose: bool = False) -> Logger:
    return Logger(verbose=verbose)
