"""Structured dispatch events and the sinks that receive them."""

from __future__ import annotations

import logging as py_logging
from dataclasses import dataclass
from typing import Protocol

ATTEMPTING = "attempting"
CLASSIFIED = "classified"
VALIDATED = "validated"


@dataclass(frozen=True)
class DispatchEvent:
    name: str
    operation: str
    attempt: int
    detail: str = ""
    payload: object = None


class EventSink(Protocol):
    def emit(self, event: DispatchEvent) -> None: ...


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[DispatchEvent] = []

    def emit(self, event: DispatchEvent) -> None:
        self.events.append(event)

    def named(self, name: str) -> list[DispatchEvent]:
        return [event for event in self.events if event.name == name]


class LoggingSink:
    def __init__(self, logger: py_logging.Logger | None = None) -> None:
        self.logger = logger or py_logging.getLogger("relaydispatch.events")

    def emit(self, event: DispatchEvent) -> None:
        self.logger.debug(
            "%s operation=%s attempt=%s %s",
            event.name,
            event.operation,
            event.attempt,
            event.detail,
        )
