"""Rich logging integration for trackermesh.

Provides the Rich console handler used for interactive output and a file
formatter that strips Rich markup.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

_MARKUP_PATTERN = re.compile(r"\[/?[^\]]+\]")


class CorrelationRichHandler(RichHandler):
    """RichHandler that tags records with the current correlation ID.

    Event names such as ``PEERCONNECT`` or ``TRACKERWARNING`` written in
    ALL_CAPS are highlighted in orange, the emitting function in pink.
    """

    ALL_CAPS_PATTERN = re.compile(r"\b[A-Z][A-Z0-9_]{2,}\b")

    def __init__(
        self,
        *args: Any,
        console: Console | None = None,
        show_colors: bool = True,
        **kwargs: Any,
    ) -> None:
        """Initialize RichHandler with correlation ID support.

        Args:
            *args: Positional arguments for RichHandler
            console: Optional Rich Console instance
            show_colors: Whether to colorize function names and event names
            **kwargs: Keyword arguments for RichHandler

        """
        if console is None:
            console = Console(file=sys.stdout, markup=True, color_system="auto")

        self.show_colors = show_colors
        kwargs.setdefault("markup", True)
        super().__init__(*args, console=console, **kwargs)

    def _colorize(self, message: str) -> str:
        return self.ALL_CAPS_PATTERN.sub(
            lambda match: f"[orange1]{match.group(0)}[/orange1]", message
        )

    def emit(self, record: logging.LogRecord) -> None:
        """Emit a log record with correlation ID and colorized text."""
        try:
            if not hasattr(record, "correlation_id"):
                from trackermesh.utils.logging_config import correlation_id

                record.correlation_id = correlation_id.get() or "no-correlation-id"

            if self.markup:
                # Messages carry remote text such as tracker errors
                message = escape(record.getMessage())
                if self.show_colors:
                    message = self._colorize(message)
                    func_name = getattr(record, "funcName", None)
                    if func_name:
                        message = f"[#ff69b4]{func_name}[/#ff69b4] {message}"
                record = logging.makeLogRecord(record.__dict__)
                record.msg = message
                record.args = ()

            super().emit(record)
        except Exception:
            self.handleError(record)

    def handleError(self, record: logging.LogRecord) -> None:
        """Write logging failures straight to stderr to avoid recursion."""
        try:
            sys.stderr.write(
                f"Logging error: {record.levelname} {record.name}: {record.msg}\n"
            )
            sys.stderr.flush()
        except Exception:  # noqa: S110
            pass


def strip_rich_markup(text: str) -> str:
    """Strip Rich markup from text for file logging.

    Args:
        text: Text with Rich markup

    Returns:
        Text without Rich markup

    """
    return _MARKUP_PATTERN.sub("", text)


class FileFormatter(logging.Formatter):
    """Formatter for file output that strips Rich markup."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record, stripping Rich markup for file output."""
        return strip_rich_markup(super().format(record))


def create_rich_handler(
    console: Console | None = None,
    level: int | str = logging.INFO,
    show_path: bool = False,
    rich_tracebacks: bool = True,
    show_colors: bool = True,
) -> logging.Handler:
    """Create a RichHandler with correlation ID support.

    Args:
        console: Optional Rich Console instance
        level: Log level
        show_path: Whether to show file paths in log output
        rich_tracebacks: Whether to use rich tracebacks
        show_colors: Whether to colorize function and event names

    Returns:
        Configured RichHandler instance

    """
    if console is None:
        console = Console(file=sys.stdout, markup=True, legacy_windows=False)

    return CorrelationRichHandler(
        console=console,
        level=level,
        show_path=show_path,
        rich_tracebacks=rich_tracebacks,
        show_colors=show_colors,
    )
