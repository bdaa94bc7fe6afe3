"""A small leveled logger."""

from __future__ import annotations

import sys
import threading
import time
from typing import Optional, TextIO


def _sprint(args: tuple) -> str:
    """Join operands, adding a space between two operands that are not strings."""
    parts = []
    prev_is_str = True
    for i, arg in enumerate(args):
        is_str = isinstance(arg, str)
        if i > 0 and not is_str and not prev_is_str:
            parts.append(" ")
        parts.append(str(arg))
        prev_is_str = is_str
    return "".join(parts)


def _sprintf(fmt: str, args: tuple) -> str:
    return fmt % args if args else fmt


def _header(level: str, msg: str) -> str:
    return f"{level}: {msg}"


class _Discard:
    def write(self, text: str) -> int:
        return len(text)

    def flush(self) -> None:
        pass


class DefaultLogger:
    """Writes leveled messages to a text stream; debug output is off by default."""

    def __init__(self, stream: Optional[TextIO] = None, prefix: str = "") -> None:
        self._stream = stream if stream is not None else sys.stderr
        self.prefix = prefix
        self._timestamps = False
        self._debug = False
        self._lock = threading.Lock()

    def enable_timestamps(self) -> None:
        self._timestamps = True

    def enable_debug(self) -> None:
        self._debug = True

    def _output(self, msg: str) -> None:
        line = self.prefix
        if self._timestamps:
            line += time.strftime("%Y/%m/%d %H:%M:%S ")
        line += msg
        if not line.endswith("\n"):
            line += "\n"
        with self._lock:
            self._stream.write(line)
            flush = getattr(self._stream, "flush", None)
            if flush is not None:
                flush()

    def debug(self, *args: object) -> None:
        if self._debug:
            self._output(_header("DEBUG", _sprint(args)))

    def debugf(self, fmt: str, *args: object) -> None:
        if self._debug:
            self._output(_header("DEBUG", _sprintf(fmt, args)))

    def info(self, *args: object) -> None:
        self._output(_header("INFO", _sprint(args)))

    def infof(self, fmt: str, *args: object) -> None:
        self._output(_header("INFO", _sprintf(fmt, args)))

    def error(self, *args: object) -> None:
        self._output(_header("ERROR", _sprint(args)))

    def errorf(self, fmt: str, *args: object) -> None:
        self._output(_header("ERROR", _sprintf(fmt, args)))

    def warning(self, *args: object) -> None:
        self._output(_header("WARN", _sprint(args)))

    def warningf(self, fmt: str, *args: object) -> None:
        self._output(_header("WARN", _sprintf(fmt, args)))

    def fatal(self, *args: object) -> None:
        """Log the message and exit with status 1."""
        self._output(_header("FATAL", _sprint(args)))
        raise SystemExit(1)

    def fatalf(self, fmt: str, *args: object) -> None:
        """Log the formatted message and exit with status 1."""
        self._output(_header("FATAL", _sprintf(fmt, args)))
        raise SystemExit(1)

    def panic(self, *args: object) -> None:
        """Log the message and raise RuntimeError with it."""
        msg = _sprint(args)
        self._output(msg)
        raise RuntimeError(msg)

    def panicf(self, fmt: str, *args: object) -> None:
        """Log the formatted message and raise RuntimeError with it."""
        msg = _sprintf(fmt, args)
        self._output(msg)
        raise RuntimeError(msg)


_DISCARD_LOGGER = DefaultLogger(_Discard())


def discard_logger() -> DefaultLogger:
    """Return a shared logger that drops everything written to it."""
    return _DISCARD_LOGGER