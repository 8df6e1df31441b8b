from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, TypeAlias


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    stage: str
    current: int
    total: int | None = None
    message: str = ""


@dataclass(frozen=True, slots=True)
class VideoJobEvent:
    operation: str
    done: bool
    polls: int


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    message: str
    source: str | None = None


Event: TypeAlias = ProgressEvent | VideoJobEvent | ErrorEvent
EventCallback: TypeAlias = Callable[[Event], None] | None


class EventEmitter:
    def __init__(self, callback: EventCallback = None):
        self._callback = callback

    def emit(self, event: Event) -> None:
        if self._callback is not None:
            self._callback(event)
