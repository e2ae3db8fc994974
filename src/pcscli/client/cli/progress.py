"""Terminal progress display and logging setup for the CLI.

This module provides:
- ProgressLine: Single status line redrawn with ``\\r`` on every event
- StatusLineAwareHandler: Logging handler that does not garble the line
- setup_logging: Per-run log file under the temp directory
"""

from __future__ import annotations

import logging
import os
import sys
import tempfile
import threading
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import TextIO

from pcscli.client.transfer.progress import ProgressEvent

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def format_size(num: float) -> str:
    """Format a byte count with binary units (e.g. ``1.500 MiB``)."""
    for unit in ("B", "KiB", "MiB", "GiB", "TiB"):
        if abs(num) < 1024 or unit == "TiB":
            if unit == "B":
                return f"{int(num)} B"
            return f"{num:.3f} {unit}"
        num /= 1024
    return f"{num:.3f} TiB"


# Serialises writes to the terminal between progress lines and log output.
# Reentrant so the log handler can hide the line while holding it.
screen_lock = threading.RLock()
_active_line: ProgressLine | None = None


def hide_active_line() -> None:
    """Erase the progress line currently on screen, if any."""
    with screen_lock:
        if _active_line is not None:
            _active_line.hide()


def redraw_active_line() -> None:
    """Draw the progress line currently on screen again after a hide."""
    with screen_lock:
        if _active_line is not None:
            _active_line.redraw()


class ProgressLine:
    """Draws transfer progress on a single terminal line.

    Use the instance itself as the progress callback of a transfer. The
    line last drawn is the one the console log handler hides and redraws
    around its messages, until it is cleared or finished.
    """

    def __init__(
        self,
        label: str,
        stream: TextIO | None = None,
        width: int = 100,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._label = label
        self._stream = stream or sys.stdout
        self._width = width
        self._enabled = enabled
        self._clock = clock
        self._started = clock()
        self._status = ""
        self._last_len = 0

    def __call__(self, event: ProgressEvent) -> None:
        if not self._enabled:
            return
        elapsed = max(self._clock() - self._started, 1e-6)
        speed = event.transferred / elapsed
        if event.total_bytes > 0:
            size = f"{format_size(event.transferred)}/{format_size(event.total_bytes)}"
            status = f"[{event.percent:5.1f}%] {size} {format_size(speed)}/s | {self._label}"
        else:
            status = f"{format_size(event.transferred)} {format_size(speed)}/s | {self._label}"
        self._draw(status)

    def _draw(self, status: str) -> None:
        global _active_line
        if len(status) > self._width:
            status = status[: self._width - 3] + "..."
        with screen_lock:
            clear_part = " " * max(0, self._last_len - len(status))
            self._stream.write(f"\r{status}{clear_part}")
            self._stream.flush()
            self._status = status
            self._last_len = len(status)
            _active_line = self

    def hide(self) -> None:
        """Erase the line from the screen, keeping it for redraw()."""
        with screen_lock:
            if self._last_len > 0:
                self._stream.write("\r" + " " * self._last_len + "\r")
                self._stream.flush()
                self._last_len = 0

    def redraw(self) -> None:
        """Show the last status again if it is hidden."""
        with screen_lock:
            if self._status and self._last_len == 0:
                self._stream.write(f"\r{self._status}")
                self._stream.flush()
                self._last_len = len(self._status)

    def clear(self) -> None:
        """Erase the status line for good."""
        global _active_line
        with screen_lock:
            self.hide()
            self._status = ""
            if _active_line is self:
                _active_line = None

    def finish(self, message: str) -> None:
        """Replace the status line with a final message."""
        with screen_lock:
            self.clear()
            if self._enabled:
                self._stream.write(f"{message}\n")
                self._stream.flush()


class StatusLineAwareHandler(logging.Handler):
    """Logging handler that clears the status line before printing.

    Only used for warnings and errors, which the user should see even
    while a transfer is drawing its progress.
    """

    def __init__(
        self,
        clear_func: Callable[[], None],
        update_func: Callable[[], None],
        lock: threading.RLock,
        stream: TextIO | None = None,
    ) -> None:
        super().__init__()
        self._clear_func = clear_func
        self._update_func = update_func
        self._lock = lock
        self._stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            with self._lock:
                self._clear_func()
                stream = self._stream or sys.stderr
                stream.write(msg + "\n")
                stream.flush()
                self._update_func()
        except Exception:
            self.handleError(record)

def get_log_dir() -> Path:
    """Directory of per-run log files."""
    return Path(tempfile.gettempdir()) / "pcscli" / "logs"


def setup_logging(debug: bool = False) -> Path | None:
    """Send the ``pcscli`` loggers to a per-run log file.

    The file is named ``<YYYYmmddTHHMMSS>-<pid>.log``. Warnings and errors
    are also shown on stderr.

    Returns:
        Path of the log file, or None if it could not be created.
    """
    package_logger = logging.getLogger("pcscli")
    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    package_logger.propagate = False

    console = StatusLineAwareHandler(hide_active_line, redraw_active_line, screen_lock)
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    console.setLevel(logging.WARNING)
    package_logger.addHandler(console)

    log_dir = get_log_dir()
    log_file = log_dir / f"{datetime.now().strftime('%Y%m%dT%H%M%S')}-{os.getpid()}.log"
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
    except OSError as e:
        package_logger.warning(f"Cannot create log file {log_file}: {e}")
        return None
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger.addHandler(file_handler)
    return log_file
