import logging
import sys
from typing import Optional, TextIO

_COLORS = {
    logging.DEBUG: '\033[90m',     # gray
    logging.INFO: '',
    logging.WARNING: '\033[33m',   # yellow
    logging.ERROR: '\033[31m',     # red
    logging.CRITICAL: '\033[31m',
}
_RESET = '\033[0m'

GREEN = '\033[32m'
YELLOW = '\033[33m'
CYAN = '\033[36m'
MAGENTA = '\033[35m'


class _ColorFormatter(logging.Formatter):
    """Color the message by level; honours a ``color`` extra for INFO lines."""

    def __init__(self, fmt: str, datefmt: str, use_color: bool):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        if not self.use_color:
            return text
        color = getattr(record, 'color', None) or _COLORS.get(record.levelno, '')
        return f"{color}{text}{_RESET}" if color else text


def setup_logging(
    *,
    verbose: bool = False,
    silent: bool = False,
    stream: Optional[TextIO] = None,
    color: Optional[bool] = None,
) -> None:
    """
    Configure console logging for the pipeline:
    - INFO by default, DEBUG with ``verbose``
    - only errors with ``silent``
    - ANSI colors when the stream is a terminal (or ``color`` forces it)

    Call this ONCE, before the first task runs.
    """
    stream = stream or sys.stderr
    if color is None:
        color = hasattr(stream, 'isatty') and stream.isatty()

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Remove any pre-existing handlers to avoid duplicates.
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(stream)
    if silent:
        handler.setLevel(logging.ERROR)
    else:
        handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    handler.setFormatter(_ColorFormatter(
        fmt="[%(asctime)s] %(message)s",
        datefmt="%H:%M:%S",
        use_color=color,
    ))
    root.addHandler(handler)

    # watchdog is chatty at DEBUG
    logging.getLogger('watchdog').setLevel(logging.INFO)
