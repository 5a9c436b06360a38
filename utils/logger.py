"""Console logging for FlipMatch sessions.

Everything logs through the stdlib :mod:`logging` tree under ``flipmatch``.
Library modules use plain ``logging.getLogger("flipmatch.<area>")``; the
session loop uses :class:`FlipLogger`, which tags each record with a marker
(``>`` info, ``+`` success, ``!`` warning, ``X`` error, ``*`` milestone).

:func:`install_console_handler` attaches one :class:`FlipFormatter` handler
to the ``flipmatch`` logger, rendering lines as::

    [Session] > reached max ticks=20. stopping loop
    [board_memory] ! duplicate observation for Region(...) in one batch

Colour is used only on a TTY, and never with ``FLIPMATCH_NO_COLOR=1`` or
``NO_COLOR`` set.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TextIO

ROOT_LOGGER = "flipmatch"

_RESET = "\033[0m"
_BOLD = "\033[1m"
_DIM = "\033[2m"

_FG_RED = "\033[31m"
_FG_GREEN = "\033[32m"
_FG_YELLOW = "\033[33m"
_FG_BLUE = "\033[34m"
_FG_MAGENTA = "\033[35m"
_FG_CYAN = "\033[36m"
_FG_WHITE = "\033[37m"
_FG_BRIGHT_GREEN = "\033[92m"

_TAG_COLORS: dict[str, str] = {
    "Session": _FG_CYAN,
    "Cycle": _FG_GREEN,
    "layout_store": _FG_BLUE,
    "layout_validator": _FG_BLUE,
    "board_memory": _FG_MAGENTA,
    "replay": _FG_YELLOW,
}

_MARKER_COLORS: dict[str, str] = {
    ">": _FG_GREEN,
    "+": _FG_BRIGHT_GREEN,
    "!": _FG_YELLOW,
    "X": _FG_RED,
    "*": _BOLD,
}


def _supports_color(stream: TextIO) -> bool:
    if os.getenv("FLIPMATCH_NO_COLOR", "").strip().lower() in {"1", "true", "yes"}:
        return False
    if os.getenv("NO_COLOR"):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


def _default_marker(levelno: int) -> str:
    if levelno >= logging.ERROR:
        return "X"
    if levelno >= logging.WARNING:
        return "!"
    if levelno >= logging.INFO:
        return ">"
    return ""


class FlipFormatter(logging.Formatter):
    """``[tag] marker message`` with optional ANSI colour.

    ``tag`` and ``marker`` come from the record's ``extra``; records from
    plain library loggers fall back to the last logger-name component and a
    level-derived marker.
    """

    def __init__(self, color: bool = False) -> None:
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        tag = getattr(record, "tag", None) or record.name.rsplit(".", 1)[-1]
        marker = getattr(record, "marker", None)
        if marker is None:
            marker = _default_marker(record.levelno)
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        if not self.color:
            return f"[{tag}] {marker} {message}" if marker else f"[{tag}] {message}"

        prefix = f"{_TAG_COLORS.get(tag, _FG_WHITE)}{_BOLD}[{tag}]{_RESET}"
        if not marker:
            return f"{prefix} {_DIM}{message}{_RESET}"
        return f"{prefix} {_MARKER_COLORS.get(marker, '')}{marker}{_RESET} {message}"


def install_console_handler(
    level: int | str = logging.INFO,
    stream: TextIO | None = None,
    color: bool | None = None,
) -> logging.Handler:
    """Route the ``flipmatch`` tree to *stream* (stdout by default).

    Calling it again replaces the previously installed handler.
    """
    stream = stream or sys.stdout
    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        if getattr(handler, "_flipmatch_console", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(FlipFormatter(_supports_color(stream) if color is None else color))
    handler._flipmatch_console = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    if isinstance(level, str):
        resolved = logging.getLevelName(level.strip().upper())
        level = resolved if isinstance(resolved, int) else logging.INFO
    root.setLevel(level)
    root.propagate = False
    return handler


class FlipLogger:
    """Marker-tagged front end for one area of the session loop."""

    def __init__(self, tag: str) -> None:
        self.tag = tag
        self.logger = logging.getLogger(f"{ROOT_LOGGER}.{tag.lower()}")

    def _emit(self, level: int, marker: str, message: str) -> None:
        self.logger.log(level, message, extra={"tag": self.tag, "marker": marker})

    def info(self, message: str) -> None:
        self._emit(logging.INFO, ">", message)

    def success(self, message: str) -> None:
        self._emit(logging.INFO, "+", message)

    def warn(self, message: str) -> None:
        self._emit(logging.WARNING, "!", message)

    def error(self, message: str) -> None:
        self._emit(logging.ERROR, "X", message)

    def status(self, message: str) -> None:
        """Per-tick chatter, only shown at DEBUG."""
        self._emit(logging.DEBUG, "", message)

    def highlight(self, message: str) -> None:
        """Session start / finish."""
        self._emit(logging.INFO, "*", message)
