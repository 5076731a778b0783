from __future__ import annotations

import logging
import os
import re
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional, TextIO

# Constants for formatting
LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",  # Cyan
    logging.INFO: "\033[32m",   # Green
    logging.WARNING: "\033[33m", # Yellow
    logging.ERROR: "\033[31m",  # Red
    logging.CRITICAL: "\033[35m" # Magenta
}
RESET_COLOR = "\033[0m"

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL
}

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_PATTERN = re.compile(r"tessera-\d{4}-\d{2}-\d{2}\.log")
ENV_LOG_LEVEL = "TESSERA_LOG_LEVEL"


class ConsoleLogHandler(logging.Handler):
    """Console handler with colored output and a bounded message buffer."""

    def __init__(
        self,
        stream: Optional[TextIO] = None,
        use_colors: bool = True,
        buffer_size: int = 1000,
    ):
        super().__init__()
        self.stream = stream or sys.stderr
        self.use_colors = use_colors and hasattr(self.stream, "isatty") and self.stream.isatty()
        self.buffer_size = buffer_size
        self.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        self._buffer: List[str] = []
        self._buffer_lock = threading.RLock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            if self.use_colors and record.levelno in LEVEL_COLORS:
                console_msg = f"{LEVEL_COLORS[record.levelno]}{msg}{RESET_COLOR}"
            else:
                console_msg = msg
            self.stream.write(console_msg + "\n")
            self.stream.flush()

            with self._buffer_lock:
                self._buffer.append(msg)
                if len(self._buffer) > self.buffer_size:
                    self._buffer = self._buffer[-self.buffer_size:]
        except Exception:
            self.handleError(record)

    def get_buffer(self) -> List[str]:
        """Get a copy of the current log buffer."""
        with self._buffer_lock:
            return list(self._buffer)


def rotate_logs(log_dir: Path, max_logs: int = 30) -> None:
    """Delete the oldest daily log files beyond ``max_logs``."""
    log_files = [f for f in log_dir.glob("*.log") if LOG_FILE_PATTERN.match(f.name)]
    log_files.sort(key=lambda f: f.stat().st_mtime)
    for old_file in log_files[:-max_logs] if len(log_files) > max_logs else []:
        try:
            old_file.unlink()
        except OSError:
            pass


def resolve_level(level: Optional[str] = None) -> int:
    name = level or os.getenv(ENV_LOG_LEVEL) or "info"
    return LOG_LEVELS.get(name.lower(), logging.INFO)


def setup_logging(
    log_dir: Optional[Path] = None,
    level: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> ConsoleLogHandler:
    """Install the console handler (and a daily file log when ``log_dir`` is given).

    Safe to call repeatedly: handlers installed by an earlier call are replaced.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if getattr(handler, "_tessera", False):
            root_logger.removeHandler(handler)
            handler.close()

    console = ConsoleLogHandler(stream=stream)
    console._tessera = True  # type: ignore[attr-defined]
    root_logger.addHandler(console)

    if log_dir is not None:
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            rotate_logs(log_dir)
            log_path = log_dir / f"tessera-{datetime.now().strftime('%Y-%m-%d')}.log"
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_handler._tessera = True  # type: ignore[attr-defined]
            root_logger.addHandler(file_handler)
        except OSError as exc:
            logging.getLogger(__name__).warning("File logging disabled: %s", exc)

    root_logger.setLevel(resolve_level(level))
    return console
