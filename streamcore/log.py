"""Structured logging with optional message translation and extra outputs."""

from __future__ import annotations

import enum
import json
import sys
import threading
from datetime import datetime
from typing import Any, Protocol


class Level(enum.IntEnum):
    DEBUG = 10
    INFO = 20
    WARN = 30
    ERROR = 40
    FATAL = 50


_LEVEL_NAMES = {
    "debug": Level.DEBUG,
    "info": Level.INFO,
    "warn": Level.WARN,
    "warning": Level.WARN,
    "error": Level.ERROR,
    "fatal": Level.FATAL,
}

_level = Level.DEBUG


def parse_level(text: str) -> Level:
    try:
        return _LEVEL_NAMES[text.lower()]
    except KeyError:
        raise ValueError(f"unrecognized level: {text!r}") from None


def set_level(level: Level | str) -> None:
    """Set the lowest level that is written."""
    global _level
    _level = parse_level(level) if isinstance(level, str) else Level(level)


def get_level() -> Level:
    return _level


class _Writable(Protocol):
    def write(self, data: str) -> Any: ...


class MultipleWriter:
    """Fans writes out to several writers, dropping any that fail."""

    def __init__(self) -> None:
        self._writers: dict[_Writable, None] = {}
        self._lock = threading.Lock()

    def write(self, data: str) -> int:
        with self._lock:
            writers = list(self._writers)
        for writer in writers:
            try:
                writer.write(data)
            except (OSError, ValueError):
                self.remove(writer)
        return len(data)

    def add(self, writer: _Writable) -> None:
        with self._lock:
            self._writers[writer] = None

    def remove(self, writer: _Writable) -> None:
        with self._lock:
            self._writers.pop(writer, None)

    def __contains__(self, writer: object) -> bool:
        return writer in self._writers


_multiple_writer = MultipleWriter()


def add_writer(writer: _Writable) -> None:
    _multiple_writer.add(writer)


def delete_writer(writer: _Writable) -> None:
    _multiple_writer.remove(writer)


def _format(level: Level, name: str, msg: str, fields: dict[str, Any]) -> str:
    stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
    parts = [stamp, level.name]
    if name:
        parts.append(name)
    parts.append(msg)
    if fields:
        parts.append(json.dumps(fields, ensure_ascii=False, default=str))
    return "\t".join(parts) + "\n"


class Logger:
    """A named logger carrying bound fields and an optional translation table."""

    def __init__(
        self,
        name: str = "",
        fields: dict[str, Any] | None = None,
        mapping: dict[str, str] | None = None,
    ) -> None:
        self.name = name
        self.fields = dict(fields or {})
        self._lang = mapping

    def lang(self, mapping: dict[str, str] | None) -> Logger:
        """Return a root logger that translates through ``mapping``."""
        return Logger(mapping=mapping)

    def named(self, name: str) -> Logger:
        full = f"{self.name}.{name}" if self.name else name
        return Logger(full, self.fields, self._lang)

    def bind(self, **kwargs: Any) -> Logger:
        """Return a logger that adds ``kwargs`` to every entry."""
        fields = dict(self.fields)
        fields.update(self._translate_fields(kwargs))
        return Logger(self.name, fields, self._lang)

    def _translate_fields(self, fields: dict[str, Any]) -> dict[str, Any]:
        if not self._lang:
            return dict(fields)
        return {self._lang.get(key, key): value for key, value in fields.items()}

    def _emit(self, level: Level, msg: str, fields: dict[str, Any]) -> None:
        if level < _level:
            return
        if self._lang:
            msg = self._lang.get(msg, msg)
        merged = dict(self.fields)
        merged.update(self._translate_fields(fields))
        line = _format(level, self.name, msg, merged)
        sys.stdout.write(line)
        _multiple_writer.write(line)

    def trace(self, msg: str, **kwargs: Any) -> None:
        self._emit(Level.DEBUG, msg, kwargs)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._emit(Level.DEBUG, msg, kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._emit(Level.INFO, msg, kwargs)

    def warn(self, msg: str, **kwargs: Any) -> None:
        self._emit(Level.WARN, msg, kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self._emit(Level.ERROR, msg, kwargs)

    def fatal(self, msg: str, **kwargs: Any) -> None:
        """Log and exit with status 1."""
        self._emit(Level.FATAL, msg, kwargs)
        raise SystemExit(1)

    def panic(self, msg: str, **kwargs: Any) -> None:
        """Log and raise ``RuntimeError``."""
        self._emit(Level.FATAL, msg, kwargs)
        raise RuntimeError(msg)


_root = Logger()


def _join(args: tuple[Any, ...]) -> str:
    return " ".join(str(arg) for arg in args)


def debug(*args: Any) -> None:
    _root.debug(_join(args))


def info(*args: Any) -> None:
    _root.info(_join(args))


def warn(*args: Any) -> None:
    _root.warn(_join(args))


def error(*args: Any) -> None:
    _root.error(_join(args))


def debugf(template: str, *args: Any) -> None:
    _root.debug(template % args)


def infof(template: str, *args: Any) -> None:
    _root.info(template % args)


def warnf(template: str, *args: Any) -> None:
    _root.warn(template % args)


def errorf(template: str, *args: Any) -> None:
    _root.error(template % args)