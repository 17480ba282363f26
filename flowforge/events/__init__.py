from .emitter import (
    EventEmitter,
    LogAppended,
    NodeCompleted,
    NodeStarted,
    RunCallbacks,
    RunCompleted,
    RunEvent,
)
from .sinks import EventRecorder, JsonlEventSink, QueueChannel

__all__ = [
    "EventEmitter",
    "EventRecorder",
    "JsonlEventSink",
    "LogAppended",
    "NodeCompleted",
    "NodeStarted",
    "QueueChannel",
    "RunCallbacks",
    "RunCompleted",
    "RunEvent",
]
