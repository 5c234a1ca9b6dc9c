from __future__ import annotations

import logging
import re
import sys
import threading
import warnings
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterator, TypeVar, Union

T = TypeVar("T")

FilterPredicate = Union[re.Pattern, Callable[[str], bool]]

TOKEN_DUPLICATED_MESSAGE = re.compile(r"already exists in this message chunk")

LINE_TERMINATORS = ("\n", "\r\n")


def _as_matcher(predicate: FilterPredicate) -> Callable[[str], bool]:
    if isinstance(predicate, re.Pattern):
        return lambda message: predicate.search(message) is not None
    if callable(predicate):
        return predicate
    raise TypeError("Predicate must be a compiled pattern or a callable")


class _RecordFilter(logging.Filter):
    """Handler filter dropping records whose rendered message is suppressed."""

    def __init__(self, registry: "OutputFilterRegistry") -> None:
        super().__init__()
        self._registry = registry

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # Let the handler report the broken record itself.
            return True
        return not self._registry.matches(message)


class FilteringStream:
    """Proxy over a text stream (or its binary buffer) that drops suppressed writes.

    ``write`` accepts ``str`` as well as bytes-like data. A dropped write still
    reports the full length so callers checking the return value carry on. A bare
    line terminator written right after a dropped write (as ``print`` does) is
    dropped with it.
    Everything else is delegated to the wrapped stream.
    """

    def __init__(self, stream: Any, registry: "OutputFilterRegistry", encoding: str | None = None) -> None:
        self._stream = stream
        self._registry = registry
        self._encoding = encoding or getattr(stream, "encoding", None) or "utf-8"
        self._dropped_open_line = False

    @property
    def wrapped(self) -> Any:
        return self._stream

    @property
    def buffer(self) -> "FilteringStream":
        inner = getattr(self._stream, "buffer", None)
        if inner is None:
            raise AttributeError("buffer")
        return FilteringStream(inner, self._registry, self._encoding)

    def _render(self, data: Any) -> str:
        if isinstance(data, (bytes, bytearray, memoryview)):
            return bytes(data).decode(self._encoding, errors="replace")
        return str(data)

    def write(self, data: Any) -> int:
        text = self._render(data)
        if self._dropped_open_line and text in LINE_TERMINATORS:
            self._dropped_open_line = False
            return len(data)
        if self._registry.matches(text):
            self._dropped_open_line = not text.endswith(LINE_TERMINATORS)
            return len(data)
        self._dropped_open_line = False
        return self._stream.write(data)

    def writelines(self, lines: Any) -> None:
        for line in lines:
            self.write(line)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._stream, name)


@dataclass(slots=True)
class _SavedSinks:
    showwarning: Callable[..., Any]
    stderr: Any
    handlers: list[logging.Handler] = field(default_factory=list)


class OutputFilterRegistry:
    """Process-wide set of active output predicates.

    The first registration captures the current warning sink, the logging
    handlers and ``sys.stderr`` and installs filtering shims over them. Later
    registrations, nested or overlapping, only extend the predicate set. The
    captured sinks are put back when the last registration is removed.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._matchers: list[tuple[object, Callable[[str], bool]]] = []
        self._saved: _SavedSinks | None = None
        self._record_filter = _RecordFilter(self)

    @property
    def active(self) -> bool:
        return self._saved is not None

    def matches(self, message: str) -> bool:
        for _, matcher in list(self._matchers):
            if matcher(message):
                return True
        return False

    def register(self, predicate: FilterPredicate) -> object:
        matcher = _as_matcher(predicate)
        token = object()
        with self._lock:
            if self._saved is None:
                self._install()
            self._matchers.append((token, matcher))
        return token

    def unregister(self, token: object) -> None:
        with self._lock:
            self._matchers = [entry for entry in self._matchers if entry[0] is not token]
            if not self._matchers and self._saved is not None:
                self._restore()

    @contextmanager
    def scope(self, predicate: FilterPredicate) -> Iterator[None]:
        token = self.register(predicate)
        try:
            yield
        finally:
            self.unregister(token)

    def _install(self) -> None:
        saved = _SavedSinks(showwarning=warnings.showwarning, stderr=sys.stderr)
        saved_showwarning = saved.showwarning

        def showwarning(message, category, filename, lineno, file=None, line=None):  # type: ignore[no-untyped-def]
            rendered = warnings.formatwarning(message, category, filename, lineno, line)
            if self.matches(rendered):
                return
            saved_showwarning(message, category, filename, lineno, file, line)

        handlers = list(logging.getLogger().handlers)
        if logging.lastResort is not None:
            handlers.append(logging.lastResort)
        for handler in handlers:
            handler.addFilter(self._record_filter)
        saved.handlers = handlers

        warnings.showwarning = showwarning
        sys.stderr = FilteringStream(saved.stderr, self)
        self._saved = saved

    def _restore(self) -> None:
        saved = self._saved
        if saved is None:
            return
        warnings.showwarning = saved.showwarning
        sys.stderr = saved.stderr
        for handler in saved.handlers:
            handler.removeFilter(self._record_filter)
        self._saved = None


_registry = OutputFilterRegistry()


def get_registry() -> OutputFilterRegistry:
    return _registry


@contextmanager
def suppress_output(predicate: FilterPredicate) -> Iterator[None]:
    """Drop warnings, log records and stderr writes matching ``predicate`` inside the block."""

    with _registry.scope(predicate):
        yield


async def with_log_filter(predicate: FilterPredicate, operation: Callable[[], Awaitable[T]]) -> T:
    """Await ``operation()`` while output matching ``predicate`` is suppressed."""

    _as_matcher(predicate)
    if not callable(operation):
        raise TypeError("Operation must be callable")
    with suppress_output(predicate):
        return await operation()
