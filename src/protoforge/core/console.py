"""Console status output and logging setup for the CLI."""

from __future__ import annotations

import logging
from typing import IO

from rich.console import Console
from rich.table import Table
from rich.text import Text

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_LABELS: dict[str, tuple[str, str]] = {
    "info": ("[INFO]", "bold blue"),
    "success": ("[SUCCESS]", "bold green"),
    "warning": ("[WARNING]", "bold yellow"),
    "error": ("[ERROR]", "bold red"),
}


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for a CLI process."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )


class StatusConsole:
    """Coloured ``[INFO]``/``[SUCCESS]``/``[WARNING]``/``[ERROR]`` status lines.

    Labels are passed as ``Text`` segments so rich never parses them as markup.
    """

    def __init__(self, console: Console | None = None, *, file: IO[str] | None = None) -> None:
        self._console = console or Console(file=file, highlight=False)

    @property
    def console(self) -> Console:
        return self._console

    def info(self, message: str) -> None:
        self._emit("info", message)

    def success(self, message: str) -> None:
        self._emit("success", message)

    def warning(self, message: str) -> None:
        self._emit("warning", message)

    def error(self, message: str) -> None:
        self._emit("error", message)

    def table(self, table: Table) -> None:
        self._console.print(table)

    def _emit(self, kind: str, message: str) -> None:
        label, style = _LABELS[kind]
        self._console.print(Text.assemble((label, style), " ", message))


__all__ = ["LOG_FORMAT", "StatusConsole", "configure_logging"]
