"""
Run event stream: a tagged union of events delivered synchronously, in
emission order, to every subscriber.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Union

from flowforge.controller.records import LogEntry, Run


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NodeStarted:
    type: ClassVar[str] = "node-start"

    run_id: str
    node_id: str
    node_name: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "runId": self.run_id,
            "nodeId": self.node_id,
            "nodeName": self.node_name,
        }


@dataclass(frozen=True)
class NodeCompleted:
    type: ClassVar[str] = "node-complete"

    run_id: str
    node_id: str
    success: bool
    duration_ms: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.type,
            "runId": self.run_id,
            "nodeId": self.node_id,
            "success": self.success,
            "durationMs": self.duration_ms,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class LogAppended:
    type: ClassVar[str] = "log"

    entry: LogEntry

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "entry": self.entry.to_json_dict()}


@dataclass(frozen=True)
class RunCompleted:
    type: ClassVar[str] = "run-complete"

    run: Run

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "run": self.run.to_json_dict()}


RunEvent = Union[NodeStarted, NodeCompleted, LogAppended, RunCompleted]
Subscriber = Callable[[RunEvent], None]


class EventEmitter:
    """Single-writer, multi-subscriber event stream."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(subscriber)

        def _unsubscribe() -> None:
            self.unsubscribe(subscriber)

        return _unsubscribe

    def unsubscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

    def emit(self, event: RunEvent) -> None:
        with self._lock:
            for subscriber in list(self._subscribers):
                try:
                    subscriber(event)
                except Exception:
                    logger.exception("event subscriber %r failed on %s", subscriber, event.type)


@dataclass
class RunCallbacks:
    """Adapts the event union onto the four discrete run callbacks."""

    on_node_start: Callable[[str], None] | None = None
    on_node_complete: Callable[[str, bool], None] | None = None
    on_log: Callable[[dict[str, Any]], None] | None = None
    on_complete: Callable[[Run], None] | None = None

    def __call__(self, event: RunEvent) -> None:
        if isinstance(event, NodeStarted):
            if self.on_node_start is not None:
                self.on_node_start(event.node_id)
        elif isinstance(event, NodeCompleted):
            if self.on_node_complete is not None:
                self.on_node_complete(event.node_id, event.success)
        elif isinstance(event, LogAppended):
            if self.on_log is not None:
                self.on_log(event.entry.to_execution_log())
        elif isinstance(event, RunCompleted):
            if self.on_complete is not None:
                self.on_complete(event.run)
