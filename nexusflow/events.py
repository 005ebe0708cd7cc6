"""Run event log and observers."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, Iterable, Iterator, List, Optional, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class EventLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


class RunEvent(BaseModel):
    """Single timestamped entry of a run's event log."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    run_id: str
    seq: int
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    level: EventLevel
    message: str
    step_id: Optional[str] = None


class RunObserver(Protocol):
    """Consumer of run events (console, telemetry, UI bridge)."""

    def on_event(self, event: RunEvent) -> None:
        """Handle one event; called in emission order."""


class LoggingObserver(RunObserver):
    """Forward run events to the standard logging system."""

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self._log = log or logger

    def on_event(self, event: RunEvent) -> None:
        level = logging.ERROR if event.level is EventLevel.ERROR else logging.INFO
        where = f" [{event.step_id}]" if event.step_id else ""
        self._log.log(level, f"run={event.run_id}{where} {event.level.value}: {event.message}")


_CLOSED = object()


class EventLog:
    """Ordered, append-only event log of one run.

    Events are pushed to observers synchronously as they are emitted and
    can also be consumed as an async stream through :meth:`subscribe`.
    All appends happen on the event loop thread, so emission order is
    the order of ``seq``.
    """

    def __init__(self, run_id: str, observers: Iterable[RunObserver] = ()) -> None:
        self.run_id = run_id
        self._events: List[RunEvent] = []
        self._observers = list(observers)
        self._subscribers: List[asyncio.Queue] = []
        self._closed = False

    def emit(
        self, level: EventLevel | str, message: str, step_id: Optional[str] = None
    ) -> RunEvent:
        event = RunEvent(
            run_id=self.run_id,
            seq=len(self._events),
            level=EventLevel(level),
            message=message,
            step_id=step_id,
        )
        self._events.append(event)
        for observer in self._observers:
            try:
                observer.on_event(event)
            except Exception:
                logger.exception(f"Observer {observer!r} failed on event {event.seq}")
        for queue in self._subscribers:
            queue.put_nowait(event)
        return event

    def info(self, message: str, step_id: Optional[str] = None) -> RunEvent:
        return self.emit(EventLevel.INFO, message, step_id)

    def success(self, message: str, step_id: Optional[str] = None) -> RunEvent:
        return self.emit(EventLevel.SUCCESS, message, step_id)

    def error(self, message: str, step_id: Optional[str] = None) -> RunEvent:
        return self.emit(EventLevel.ERROR, message, step_id)

    def close(self) -> None:
        """End all live subscriptions. Later events are still recorded."""
        if self._closed:
            return
        self._closed = True
        for queue in self._subscribers:
            queue.put_nowait(_CLOSED)
        self._subscribers.clear()

    @property
    def closed(self) -> bool:
        return self._closed

    async def subscribe(self) -> AsyncIterator[RunEvent]:
        """Yield past events, then live ones until the run finishes."""
        queue: asyncio.Queue = asyncio.Queue()
        for event in self._events:
            queue.put_nowait(event)
        if self._closed:
            queue.put_nowait(_CLOSED)
        else:
            self._subscribers.append(queue)
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                yield item
        finally:
            if queue in self._subscribers:
                self._subscribers.remove(queue)

    def for_step(self, step_id: str) -> List[RunEvent]:
        return [event for event in self._events if event.step_id == step_id]

    def __iter__(self) -> Iterator[RunEvent]:
        return iter(list(self._events))

    def __len__(self) -> int:
        return len(self._events)
