"""Decoding and dispatch of Doorbird `monitor.cgi` event lines."""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

EventHandler = Callable[[], None]
EventHandlers = dict[str, EventHandler]

# Response we should receive: multipart/x-mixed-replace; boundary=--ioboundary
_BOUNDARY_RE = re.compile(r"^multipart/x-mixed-replace; boundary=(.*)$")

CONTENT_TYPE_ECHO = "CONTENT-TYPE: TEXT/PLAIN"
LOW_SIGNAL_VALUE = "L"


def extract_boundary(content_type: str) -> str | None:
    """Return everything after `boundary=`, or None if the header does not match."""
    match = _BOUNDARY_RE.match(content_type or "")
    if match is None:
        return None
    return match.group(1)


def split_frame(chunk: bytes | str) -> list[str]:
    text = chunk.decode("utf-8", errors="replace") if isinstance(chunk, bytes) else chunk
    return text.split("\r\n")


def decode_event_line(line: str) -> tuple[str, str] | None:
    """Split `name:value` on the last colon. Returns None without a colon or a name."""
    index = line.rfind(":")
    if index <= 0:
        return None
    return line[:index], line[index + 1 :]


@dataclass(slots=True)
class DispatchMetrics:
    """In-memory counters for one session's event stream."""

    lines_total: int = 0
    dispatched_total: int = 0
    unknown_lines_total: int = 0
    unhandled_total: int = 0
    handler_errors_total: int = 0
    dispatched_by_name: Counter[str] = field(default_factory=Counter)

    def snapshot(self) -> dict[str, Any]:
        return {
            "lines_total": self.lines_total,
            "dispatched_total": self.dispatched_total,
            "unknown_lines_total": self.unknown_lines_total,
            "unhandled_total": self.unhandled_total,
            "handler_errors_total": self.handler_errors_total,
            "dispatched_by_name": dict(self.dispatched_by_name),
        }


class EventDispatcher:
    """Routes decoded event lines to the session's handler table.

    `handlers` is read, never written, here. The owner must register its
    handlers before events can arrive; nothing guards concurrent mutation.
    """

    def __init__(
        self,
        handlers: EventHandlers,
        *,
        boundary: str,
        label: str = "Doorbird",
        metrics: DispatchMetrics | None = None,
    ) -> None:
        self.handlers = handlers
        self.boundary = boundary
        self.label = label
        self.metrics = metrics or DispatchMetrics()

    def feed(self, chunk: bytes | str) -> list[str]:
        """Process one body chunk and return the event names dispatched, in order."""
        dispatched: list[str] = []
        for line in split_frame(chunk):
            if not line:
                continue
            if line == self.boundary:
                continue
            if line.upper() == CONTENT_TYPE_ECHO:
                continue

            self.metrics.lines_total += 1
            decoded = decode_event_line(line)
            if decoded is None:
                self.metrics.unknown_lines_total += 1
                logger.warning(f"{self.label}: Received an unknown response: {line}.")
                continue

            name, value = decoded
            if value == LOW_SIGNAL_VALUE:
                continue

            handler = self.handlers.get(name)
            if handler is None:
                self.metrics.unhandled_total += 1
                logger.info(f"{self.label}: Unhandled event captured: {name}.")
                continue

            self.metrics.dispatched_total += 1
            self.metrics.dispatched_by_name[name] += 1
            logger.debug(f"{self.label}: dispatching event {name}={value}")
            try:
                handler()
            except Exception as e:
                self.metrics.handler_errors_total += 1
                logger.error(f"{self.label}: handler for event {name} failed: {e}")
            dispatched.append(name)
        return dispatched
