"""Event subscribers: in-memory recorder, drainable channel, JSONL file."""
from __future__ import annotations

import json
import queue
from pathlib import Path
from typing import Any, Iterator

from flowforge.events.emitter import RunCompleted, RunEvent


class EventRecorder:
    """Keeps every event in a list."""

    def __init__(self) -> None:
        self.events: list[RunEvent] = []

    def __call__(self, event: RunEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[RunEvent]:
        return [event for event in self.events if event.type == event_type]

    def types(self) -> list[str]:
        return [event.type for event in self.events]

    def clear(self) -> None:
        self.events.clear()


class QueueChannel:
    """Buffered channel drained by a single consumer."""

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: queue.Queue[RunEvent] = queue.Queue(maxsize=maxsize)

    def __call__(self, event: RunEvent) -> None:
        self._queue.put(event)

    def drain(self, timeout: float | None = None) -> Iterator[RunEvent]:
        """Yield events until the run completes; ``queue.Empty`` on timeout."""
        while True:
            event = self._queue.get(timeout=timeout)
            yield event
            if isinstance(event, RunCompleted):
                return

    def pending(self) -> int:
        return self._queue.qsize()


class JsonlEventSink:
    """Appends one JSON object per event to a file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def __call__(self, event: RunEvent) -> None:
        with open(self.path, "a", encoding="utf-8", newline="\n") as handle:
            handle.write(json.dumps(event.to_dict(), ensure_ascii=True) + "\n")
            handle.flush()

    def read_events(self, event_type: str | None = None) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []

        events: list[dict[str, Any]] = []
        with open(self.path, "r", encoding="utf-8") as handle:
            for line in handle:
                if not line.strip():
                    continue
                payload = json.loads(line)
                if event_type is not None and payload.get("type") != event_type:
                    continue
                events.append(payload)
        return events
