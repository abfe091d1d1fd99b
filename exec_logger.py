"""
exec_logger.py — colorful console logger shared by every phase of a run
"""

import logging
import re
import sys
import threading
import traceback
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


# ─────────────────────────────────────────────
#  ANSI Color / Style Codes
# ─────────────────────────────────────────────
class Colors:
    RESET       = "\033[0m"
    BOLD        = "\033[1m"
    DIM         = "\033[2m"

    GREEN       = "\033[32m"
    WHITE       = "\033[37m"
    CYAN        = "\033[36m"
    BRIGHT_RED      = "\033[91m"
    BRIGHT_GREEN    = "\033[92m"
    BRIGHT_YELLOW   = "\033[93m"
    BRIGHT_MAGENTA  = "\033[95m"
    BRIGHT_CYAN     = "\033[96m"

    BG_RED      = "\033[41m"


# ─────────────────────────────────────────────
#  Strip ANSI codes (for file output)
# ─────────────────────────────────────────────
ANSI_ESCAPE = re.compile(r"\033\[[0-9;]*m")

def strip_ansi(text: str) -> str:
    return ANSI_ESCAPE.sub("", text)


DEFAULT_DATETIME_FMT = "%Y.%m.%d %H:%M:%S"


# ─────────────────────────────────────────────
#  Level → Color + Label mapping
# ─────────────────────────────────────────────
DEFAULT_LEVEL_STYLES: dict[str, dict] = {
    "DEBUG":    {"color": Colors.CYAN,          "label": "DEBUG  "},
    "INFO":     {"color": Colors.BRIGHT_GREEN,  "label": "INFO   "},
    "SUCCESS":  {"color": Colors.GREEN + Colors.BOLD, "label": "SUCCESS"},
    "WARNING":  {"color": Colors.BRIGHT_YELLOW, "label": "WARNING"},
    "ERROR":    {"color": Colors.BRIGHT_RED,    "label": "ERROR  "},
    "CRITICAL": {"color": Colors.BOLD + Colors.BG_RED + Colors.WHITE, "label": "CRITICAL"},
    "STEP":     {"color": Colors.BRIGHT_MAGENTA,"label": "STEP   "},
    "HEADER":   {"color": Colors.BRIGHT_CYAN + Colors.BOLD, "label": "HEADER "},
}

CUSTOM_LEVELS = {
    "SUCCESS": 25,
    "STEP":    22,
    "HEADER":  21,
}
for name, value in CUSTOM_LEVELS.items():
    if not hasattr(logging, name):
        logging.addLevelName(value, name)


def _level_value(level_name: str) -> int:
    if level_name in CUSTOM_LEVELS:
        return CUSTOM_LEVELS[level_name]
    return getattr(logging, level_name, logging.INFO)


# ─────────────────────────────────────────────
#  ColorLogger
# ─────────────────────────────────────────────
class ColorLogger:
    """
    Colored console output plus an optional plain-text log file.

    Parameters
    ----------
    name        : Logger name (shown in log lines if include_name=True)
    log_dir     : Directory for the log file. None disables file output
    datetime_fmt: strftime format for timestamps
    level       : Minimum log level (logging.DEBUG, logging.INFO, etc.)
    max_bytes   : Max log file size before rotation (default 5 MB)
    backup_count: Number of rotated files to keep
    include_name: Whether to print the logger name in each line
    separator   : Characters used between columns (default " │ ")
    console     : Enable/disable console output
    line_width  : Width of header() banners (default 60)

    Emission is serialised with a re-entrant lock. Mounter threads log
    concurrently, and a signal handler may log from the main thread while
    that same thread is already inside _emit().
    """

    def __init__(
        self,
        name: str                       = "paramount",
        log_dir: Optional[str | Path]   = None,
        datetime_fmt: str               = DEFAULT_DATETIME_FMT,
        level: int                      = logging.INFO,
        max_bytes: int                  = 5 * 1024 * 1024,
        backup_count: int               = 5,
        include_name: bool              = False,
        separator: str                  = " │ ",
        console: bool                   = True,
        line_width: int                 = 60,
    ):
        self.name         = name
        self.datetime_fmt = datetime_fmt
        self.level        = level
        self.separator    = separator
        self.line_width   = line_width
        self.include_name = include_name
        self.console      = console
        self.styles       = dict(DEFAULT_LEVEL_STYLES)
        self._lock        = threading.RLock()

        self.col_widths = {
            "timestamp": len(datetime.now().strftime(datetime_fmt)),
            "level":     max(len(s["label"].strip()) for s in self.styles.values()),
            "name":      12,
        }

        # ── File handler setup ──────────────────────────────────────────
        self.log_path = None
        self._file_handler = None
        if log_dir is not None:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            dtstamp = datetime.now().strftime(DEFAULT_DATETIME_FMT).replace(":", "").replace(" ", "_").replace(".", "")
            self.log_path = log_dir / f"{dtstamp}_{name}.log"
            self._file_handler = RotatingFileHandler(
                self.log_path,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            self._file_handler.setLevel(logging.DEBUG)

    # ─────────────────────────────────────────
    #  Core formatting
    # ─────────────────────────────────────────
    def _format(self, level_name: str, message: str, color: bool = True) -> str:
        style    = self.styles.get(level_name, {"color": Colors.WHITE, "label": level_name.ljust(7)})
        clr      = style["color"] if color else ""
        reset    = Colors.RESET if color else ""
        dim      = Colors.DIM if color else ""
        sep      = f"{dim}{self.separator}{reset}"

        ts        = datetime.now().strftime(self.datetime_fmt)
        ts_col    = ts.ljust(self.col_widths["timestamp"])
        lvl_col   = style["label"].strip().ljust(self.col_widths["level"])

        parts = [f"{dim}{ts_col}{reset}", f"{clr}{lvl_col}{reset}"]

        if self.include_name:
            nm_col = self.name[:self.col_widths["name"]].ljust(self.col_widths["name"])
            parts.append(f"{dim}{nm_col}{reset}")

        parts.append(f"{clr}{message}{reset}")
        return sep.join(parts)

    def _write_file(self, level: int, text: str):
        if self._file_handler is None:
            return
        record = logging.LogRecord(
            name=self.name, level=level, pathname="", lineno=0,
            msg=text, args=(), exc_info=None,
        )
        self._file_handler.emit(record)

    def _emit(self, level_name: str, message: str, exc_info=False):
        std_level = _level_value(level_name)
        if std_level < self.level:
            return

        with self._lock:
            if self.console:
                styled = self._format(level_name, message, color=True)
                stream = sys.stderr if std_level >= logging.ERROR else sys.stdout
                print(styled, file=stream, flush=True)

            self._write_file(std_level, strip_ansi(self._format(level_name, message, color=False)))

            if exc_info:
                tb = traceback.format_exc()
                if self.console:
                    print(tb, file=sys.stderr, end="", flush=True)
                self._write_file(std_level, tb)

    # ─────────────────────────────────────────
    #  Public log methods
    # ─────────────────────────────────────────
    def debug(self, msg: str):                   self._emit("DEBUG",    msg)
    def info(self, msg: str):                    self._emit("INFO",     msg)
    def success(self, msg: str):                 self._emit("SUCCESS",  msg)
    def warning(self, msg: str):                 self._emit("WARNING",  msg)
    def error(self, msg: str, exc_info=False):   self._emit("ERROR",    msg, exc_info=exc_info)
    def critical(self, msg: str, exc_info=False):self._emit("CRITICAL", msg, exc_info=exc_info)
    def step(self, msg: str):                    self._emit("STEP",     msg)

    def header(self, msg: str, width: int = None):
        """Print a prominent section header banner."""
        w = width or self.line_width
        bar = "═" * w
        self._emit("HEADER", bar)
        self._emit("HEADER", msg.center(w))
        self._emit("HEADER", bar)

    def close(self):
        if self._file_handler is not None:
            self._file_handler.close()

    @property
    def log_file_path(self) -> Optional[Path]:
        return self.log_path

    def __repr__(self):
        return (f"<ColorLogger name={self.name!r} level={logging.getLevelName(self.level)} "
                f"log={self.log_path}>")


# ─────────────────────────────────────────────
#  Registry — stores loggers by name
# ─────────────────────────────────────────────
_registry: dict[str, "ColorLogger"] = {}


def get_logger(
    name: str                       = "paramount",
    log_dir: Optional[str | Path]   = None,
    verbose: bool                   = False,
    **kwargs,
) -> ColorLogger:
    """
    Returns a ColorLogger for the given name.
    If one with that name already exists, returns the cached instance —
    all subsequent calls ignore configuration parameters.
    `verbose` lowers the threshold to DEBUG so per-directory and
    per-mounter progress is shown.
    """
    if name not in _registry:
        _registry[name] = ColorLogger(
            name=name,
            log_dir=log_dir,
            level=logging.DEBUG if verbose else logging.INFO,
            **kwargs,
        )
    return _registry[name]


def clear_logger(name: str):
    """Remove a logger from the registry (useful for testing)."""
    logger = _registry.pop(name, None)
    if logger is not None:
        logger.close()
